"""Small demonstration tools."""

import random

from toolstream.tools import FunctionTool, tool

FRUITS = ["apple", "banana", "cherry", "mango", "kiwi", "pear", "plum"]


@tool(display_name="Random Fruit", icon="leaf", default_enabled=False,
      summary="Picked a fruit")
def random_fruit():
    """Return the name of a random fruit."""
    return random.choice(FRUITS)


def user_name_tool(name: str) -> FunctionTool:
    """Build a tool that tells the model the user's name."""

    def user_name():
        """Return the name the user wants to be called by."""
        return name or "The user has not set a name."

    return FunctionTool(
        user_name,
        display_name="User Name",
        icon="person",
        default_enabled=False,
        summary="Looked up your name",
    )
