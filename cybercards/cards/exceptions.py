"""Card router exceptions, translated to HTTP errors in cybercards/api/routes/cards.py."""


class CardError(Exception):
    """Base class for card router errors."""


class CardNotFoundError(CardError):
    def __init__(self, card_id: str) -> None:
        super().__init__(f"Card {card_id} not found")
        self.card_id = card_id


class MessageNotFoundError(CardError):
    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message {message_id} not found")
        self.message_id = message_id


class PermissionDeniedError(CardError):
    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)


class InvalidMessageTypeError(CardError):
    def __init__(self, message_type: str, card_type: str) -> None:
        super().__init__(f"Message type '{message_type}' is not allowed on {card_type} cards")
        self.message_type = message_type
        self.card_type = card_type
