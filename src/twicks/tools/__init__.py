"""Result-dict tools over the ledger engine and the backup clients."""
