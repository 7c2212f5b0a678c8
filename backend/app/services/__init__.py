"""
Services package
"""
from app.services.choice_keys import choice_key, normalize_label
from app.services.submission_gateway import SubmissionGateway, ImageAttachment

__all__ = [
    "choice_key",
    "normalize_label",
    "SubmissionGateway",
    "ImageAttachment",
]
