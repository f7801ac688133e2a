"""HTTP API for the RFQ ledger."""
