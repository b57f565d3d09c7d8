"""
Links - Extraction, normalization and classification of email links
"""

from .classifier import classify_link
from .extractor import classify, extract_links
from .urls import is_valid_url, normalize_url

__all__ = ["classify", "classify_link", "extract_links", "is_valid_url", "normalize_url"]
