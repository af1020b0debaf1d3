"""Registry workflows built on the metadata and blob stores."""
