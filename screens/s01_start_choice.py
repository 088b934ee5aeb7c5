from __future__ import annotations
import asyncio
from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import Footer, Button, Static
from textual.containers import Vertical, Horizontal
from widgets.wizard_header import WizardHeader
from enrollment.controller import ErrorKind
from logger import log


class StartChoiceScreen(Screen):
    """Step 1: choose between client activation and manual WireGuard setup."""

    BINDINGS = [
        ("c", "activate_client", "Client activation"),
        ("m", "manual_setup", "Manual setup"),
        ("escape", "cancel", "Cancel"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self.last_error = ""

    def compose(self) -> ComposeResult:
        session = self.app.controller.session
        yield WizardHeader()
        with Vertical(id="content"):
            yield Static(f"Add a device for [bold]{session.user.username}[/bold]", classes="title")
            yield Static(
                "[bold]Defguard client[/bold] (recommended): issues a one-time enrollment "
                "token. The desktop or mobile client configures every location itself."
            )
            yield Static(
                "[bold]Manual WireGuard setup[/bold]: register a public key and download "
                "plain WireGuard configuration files.",
                classes="hint",
            )
            yield Static("", id="err_msg")
        with Horizontal(id="nav_buttons"):
            yield Button("Cancel", id="btn_cancel", variant="default")
            yield Button("Manual setup →", id="btn_manual", variant="default")
            yield Button("Activate client →", id="btn_client", variant="primary")
        yield Footer()

    def _set_busy(self, busy: bool) -> None:
        for btn_id in ("#btn_client", "#btn_manual"):
            self.query_one(btn_id, Button).disabled = busy

    def _show_error(self, msg: str, hint: str = "") -> None:
        self.last_error = msg
        text = f"[red]Error: {msg}[/red]"
        if hint:
            text += f"\n{hint}"
        self.query_one("#err_msg", Static).update(text)

    def action_activate_client(self) -> None:
        if self.app.controller.busy:
            return
        self._set_busy(True)
        self.query_one("#err_msg", Static).update("Requesting enrollment token…")
        asyncio.create_task(self._activate())

    async def _activate(self) -> None:
        result = await self.app.controller.start_client_activation()
        if result.kind is ErrorKind.STALE or not self.is_current:
            return
        self._set_busy(False)
        if result.ok:
            log.info("Step 1: client activation issued")
            from screens.s02_client_setup import ClientSetupScreen
            self.app.switch_screen(ClientSetupScreen())
            return
        hint = "Press Activate client to try again." if result.retryable else ""
        self._show_error(result.message, hint)
        if result.kind is ErrorKind.DISABLED_ACCOUNT:
            # retrying cannot succeed until an administrator acts
            self.query_one("#btn_client", Button).disabled = True

    def action_manual_setup(self) -> None:
        if self.app.controller.busy:
            return
        self.app.controller.choose_manual()
        from screens.s03_manual_setup import ManualSetupScreen
        self.app.push_screen(ManualSetupScreen())

    async def action_cancel(self) -> None:
        log.info("Step 1: cancelled by operator")
        await self.app.close_session()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn_client":
            self.action_activate_client()
        elif event.button.id == "btn_manual":
            self.action_manual_setup()
        elif event.button.id == "btn_cancel":
            await self.action_cancel()
