from entryflow.document_extractor.fields import FIELD_WHITELIST, whitelist_for
from entryflow.document_extractor.parser import DocumentParser, TextLayer

__all__ = ["FIELD_WHITELIST", "whitelist_for", "DocumentParser", "TextLayer"]
