"""Review service package: diff mapping, formatting, comments and the pipeline."""
