"""Presentation contract used by the webform handler.

The coordinator never renders. Handlers resolve pending confirmations and
show outcomes through a WebformGUI implementation.
"""
import logging

import click

from shared.enums import ConfirmationKind, OutcomeLevel
from .messages import t
from .state import Decision


class WebformGUI:
    """Dialogs and feedback the record lifecycle needs from a user interface."""

    def request_confirmation(self, pending) -> Decision:
        """Ask a yes/no question for a pending confirmation."""
        raise NotImplementedError

    def prompt_for_name(self, pending) -> Decision:
        """Ask for a record name, prefilled with pending.default_name."""
        raise NotImplementedError

    def report_outcome(self, outcome):
        raise NotImplementedError

    def alert_load_errors(self, error):
        raise NotImplementedError

    def redirect(self, url):
        raise NotImplementedError


class ConsoleGUI(WebformGUI):
    """Terminal implementation built on click prompts."""

    BUTTONS = {
        ConfirmationKind.AUTOSAVE_RECOVERY: 'confirm.autosaveload.posButton',
        ConfirmationKind.DISCARD_ON_LOAD: 'confirm.discardcurrent.posButton',
    }
    COLORS = {
        OutcomeLevel.ERROR: 'red',
        OutcomeLevel.WARNING: 'yellow',
        OutcomeLevel.SUCCESS: 'green',
    }

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def request_confirmation(self, pending):
        if pending.heading_key:
            click.secho(t(pending.heading_key), bold=True)
        button = t(self.BUTTONS.get(pending.kind, 'confirm.save.posButton'))
        accepted = click.confirm(f"{t(pending.message_key)} ({button}?)", default=False)
        return Decision(accepted=accepted)

    def prompt_for_name(self, pending):
        if pending.error_message:
            click.secho(pending.error_message, fg='red', err=True)
        value = click.prompt(t(pending.message_key), default=pending.default_name or '', show_default=True)
        value = value.strip()
        return Decision(accepted=bool(value), value=value or None)

    def report_outcome(self, outcome):
        if not outcome.message:
            return
        if outcome.heading:
            click.secho(outcome.heading, bold=True, fg=self.COLORS.get(outcome.level))
        click.secho(outcome.message, fg=self.COLORS.get(outcome.level),
                    err=outcome.level == OutcomeLevel.ERROR)

    def alert_load_errors(self, error):
        click.secho(t('alert.loaderror.heading'), bold=True, fg='red', err=True)
        for cause in error.causes:
            click.secho(f"  {cause}", fg='red', err=True)
        if error.advice:
            click.echo(error.advice, err=True)

    def redirect(self, url):
        click.echo(f"Redirecting to {url}")
        click.launch(url)
