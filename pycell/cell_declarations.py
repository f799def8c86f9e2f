class DeclarationState:
    """Accumulated declaration text handed to the compiler with every cell."""

    def __init__(self):
        self._text = ""

    def current(self) -> str:
        return self._text

    def merge(self, declarations: str) -> None:
        # The compiler already folds prior declarations into its output.
        self._text = declarations or ""

    def clear(self) -> None:
        self._text = ""
