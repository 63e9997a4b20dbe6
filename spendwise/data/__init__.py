"""Query keys, the data service interface and the query cache."""
