"""hledger process runner, journal formatter and ledger file writer."""
