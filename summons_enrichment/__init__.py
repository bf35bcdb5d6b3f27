"""
Summons enrichment worker.

This package enriches stored summons records with data recovered from
external evidence: the creation date of the video evidence page and the
structured fields a generative model reads from the summons PDF.

See ``summons_enrichment.worker`` for the pipeline entry point.
"""
