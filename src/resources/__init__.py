"""Resources: URIs, scratch files, fetching, extraction and the cache."""
