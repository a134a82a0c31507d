"""Styling for questionary prompts.

Only the context picker prompts interactively; its colors follow the
console theme.
"""

from questionary import Style

PROMPT_STYLE = Style(
    [
        ("qmark", "fg:#00afaf bold"),  # Cyan question mark, matches console 'info'
        ("question", "bold"),
        ("answer", "fg:#5fd75f bold"),  # Green, matches console 'success'
        ("pointer", "fg:#00afaf bold"),
        ("highlighted", "fg:#1c1c1c bg:#00afaf bold"),
        ("instruction", "fg:#6c6c6c italic"),
        ("text", ""),
    ]
)

POINTER = "› "
QMARK = "? "
