# app/data.py

from datetime import time

TIME_BLOCKS = {
    "AM": {
        "label": "Morning",
        "time_range": "8:00 AM - 12:00 PM",
        "default_time": time(8, 0),
        "start_hour": 8,
        "end_hour": 12,
    },
    "PM": {
        "label": "Afternoon",
        "time_range": "1:00 PM - 5:00 PM",
        "default_time": time(13, 0),
        "start_hour": 13,
        "end_hour": 17,
    },
}

# Mon..Fri
DEFAULT_WEEKDAYS = [0, 1, 2, 3, 4]

# Statuses that hold a patient's single active booking
ACTIVE_STATUSES = ("pending", "scheduled", "checked_in", "in_progress")

# Statuses the no-show job looks at
NO_SHOW_CANDIDATE_STATUSES = ("scheduled", "checked_in")

HEALTH_CARD_CATEGORY = "healthcard"

DRAFT_EXPIRED_REASON = "Draft expired"

UPLOAD_FILE_TYPES = {
    "lab_request": {
        "label": "Laboratory Request Form",
        "accepted_formats": ["image/jpeg", "image/png", "application/pdf"],
        "max_size_mb": 5,
    },
    "payment_receipt": {
        "label": "Payment Receipt",
        "accepted_formats": ["image/jpeg", "image/png", "application/pdf"],
        "max_size_mb": 5,
    },
    "valid_id": {
        "label": "Valid ID",
        "accepted_formats": ["image/jpeg", "image/png"],
        "max_size_mb": 3,
    },
    "other": {
        "label": "Other Document",
        "accepted_formats": ["image/jpeg", "image/png", "application/pdf"],
        "max_size_mb": 5,
    },
}

LAB_LOCATIONS = {
    "inside_cho": {
        "label": "Inside CHO Laboratory",
        "required_uploads": ["lab_request", "payment_receipt", "valid_id"],
    },
    "outside_cho": {
        "label": "Outside CHO Laboratory",
        "required_uploads": ["valid_id"],
    },
}
