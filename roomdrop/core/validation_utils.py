"""
Validation utilities shared by the relay and channel message parsers.
"""

from typing import Any, Dict, List, Optional


class ValidationUtils:
    """Common validation utilities."""

    @staticmethod
    def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> Optional[str]:
        """Validate that all required fields are present in the data."""
        missing_fields = [field for field in required_fields if field not in data or data[field] is None]
        if missing_fields:
            return f"Missing required fields: {', '.join(missing_fields)}"
        return None

    @staticmethod
    def validate_identifier(value: Any, name: str) -> Optional[str]:
        """Validate a room or peer identifier."""
        if not isinstance(value, str):
            return f"{name} must be a string"
        if not value.strip():
            return f"{name} cannot be empty"
        return None

    @staticmethod
    def validate_session_description(sdp: Any) -> Optional[str]:
        """Validate an RTCSessionDescriptionInit-shaped dict."""
        if not isinstance(sdp, dict):
            return "sdp must be an object"
        error = ValidationUtils.validate_required_fields(sdp, ['type', 'sdp'])
        if error:
            return error
        if sdp['type'] not in ('offer', 'answer'):
            return f"Invalid description type: {sdp['type']}"
        if not isinstance(sdp['sdp'], str) or not sdp['sdp']:
            return "Description sdp cannot be empty"
        return None

    @staticmethod
    def validate_size(value: Any, name: str) -> Optional[str]:
        """Validate a non-negative integer byte count."""
        if isinstance(value, bool) or not isinstance(value, int):
            return f"{name} must be an integer"
        if value < 0:
            return f"{name} cannot be negative"
        return None
