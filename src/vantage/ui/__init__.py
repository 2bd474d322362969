"""User interface components."""

from vantage.ui.console import ConsolePresenter, ConsoleSession
from vantage.ui.presenter import Presenter

__all__ = ["ConsolePresenter", "ConsoleSession", "Presenter"]
