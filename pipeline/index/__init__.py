"""pipeline.index

Index Builder: compilation record + environment snapshot -> persisted index.
"""

from .builder import IndexBuilder, filter_existing_entries, index_key

__all__ = ["IndexBuilder", "filter_existing_entries", "index_key"]
