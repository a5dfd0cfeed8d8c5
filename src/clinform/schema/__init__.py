"""Schema loading and normalization."""

from clinform.schema.normalizer import FormSchemaNormalizer, NormalizedForm, load_schema

__all__ = ["FormSchemaNormalizer", "NormalizedForm", "load_schema"]
