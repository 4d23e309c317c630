"""Recording query core: parser, index, search and query executors."""
