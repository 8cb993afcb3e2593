class TurnInProgressError(Exception):
    """A chat already has an open turn; turns on one chat never overlap."""

    def __init__(self, chat_id: str):
        super().__init__(f"Chat {chat_id} already has a reply in progress")
        self.chat_id = chat_id
