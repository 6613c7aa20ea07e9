"""Command-line interface for meddocs.

Run ``python -m meddocs.cli <command>``:

- ``upload``  -- ingest a text, PDF or image file as a document
- ``chunk``   -- chunk, embed and store a text file
- ``search``  -- search documents (hybrid, vector or lexical)
- ``list``    -- list stored documents
- ``delete``  -- delete a document and its chunks
- ``stats``   -- show store statistics
"""
