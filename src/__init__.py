"""
Quote Ledger: quote-to-project conversion and payment reconciliation

Packages:
    api/        JSON routes over the ledger service
    ledger/     Quotes, conversion, payments, finance rollups, directory, leads
    core/       Shared configuration, SQLite store, logging paths, startup checks
"""
