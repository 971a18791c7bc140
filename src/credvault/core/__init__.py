"""Core vault machinery: locking, audit ledger, metadata and credential mutations."""
