"""School query parsing and validation.

The query layer converts a free-text school search phrase (English, Russian or Kazakh) into a
sanitized `ParsedFilter`, which the search engine then applies to directory records.
"""
