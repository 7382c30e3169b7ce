"""Receipt image ingestion: batch extraction pipeline and review store."""
