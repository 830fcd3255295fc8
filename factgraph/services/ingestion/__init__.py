"""Document ingestion: fetch, normalize, chunk, store and index filings.

- fetcher: SEC EDGAR submissions and filing documents
- text / chunker: HTML to text and character windows
- document_ingestion: one filer
- bulk_ingestion: many filers with optional extraction and progress events
"""
