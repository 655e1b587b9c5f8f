class ValidationError(Exception):
    pass


def validate_answer(text: str, min_length: int = 3) -> None:
    """Reject consensus answers too short to be a spell (the trailing 。 counts)."""
    if len(text) < min_length:
        raise ValidationError(f"Consensus {text!r} is shorter than {min_length} characters")
