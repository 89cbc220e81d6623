# app/uploads.py

from typing import Iterable, List

from .data import LAB_LOCATIONS, UPLOAD_FILE_TYPES
from .errors import ValidationError


def validate_upload(file_type: str, mime_type: str, file_size_bytes: int) -> None:
    config = UPLOAD_FILE_TYPES.get(file_type)
    if config is None:
        raise ValidationError(f"Unknown file type '{file_type}'")

    size_mb = file_size_bytes / (1024 * 1024)
    if size_mb > config["max_size_mb"]:
        raise ValidationError(f"File size exceeds {config['max_size_mb']}MB limit")

    if mime_type not in config["accepted_formats"]:
        raise ValidationError(
            "Invalid file format. Accepted formats: " + ", ".join(config["accepted_formats"])
        )


def required_uploads(lab_location: str) -> List[str]:
    location = LAB_LOCATIONS.get(lab_location)
    if location is None:
        return []
    return list(location["required_uploads"])


def missing_uploads(lab_location: str, uploaded_types: Iterable[str]) -> List[str]:
    present = set(uploaded_types)
    return [file_type for file_type in required_uploads(lab_location) if file_type not in present]
