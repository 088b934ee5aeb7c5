from __future__ import annotations
from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import Footer, Button, Static
from textual.containers import Horizontal, VerticalScroll
from widgets.wizard_header import WizardHeader
from widgets.qr_view import QRView
from logger import log


class ClientSetupScreen(Screen):
    """Step 2a: hand the enrollment token to a Defguard client."""

    BINDINGS = [
        ("l", "copy_link", "Copy link"),
        ("t", "copy_token", "Copy token"),
        ("escape", "close", "Close"),
    ]

    def compose(self) -> ComposeResult:
        enrollment = self.app.controller.session.enrollment
        renderer = self.app.renderer
        yield WizardHeader()
        with VerticalScroll(id="content"):
            yield Static("Configure the Defguard client", classes="title")
            yield Static(
                "[bold]Desktop:[/bold] with the client installed, open the one-click link "
                "below. It adds this instance automatically."
            )
            yield Static(renderer.deep_link(enrollment), id="deep_link", markup=False)
            yield Static(
                "[bold]Manual client setup:[/bold] add an instance in the client and "
                "enter the URL and token.",
                classes="hint",
            )
            yield Static(renderer.display_text(enrollment), id="manual_text", markup=False)
            yield Static("[bold]Mobile:[/bold] scan this code with the mobile client.")
            yield QRView(renderer.qr_payload(enrollment), id="qr")
            yield Static(
                "Once the client is configured you can close this window.", id="status_msg"
            )
        with Horizontal(id="nav_buttons"):
            yield Button("Copy link", id="btn_copy_link", variant="default")
            yield Button("Copy token", id="btn_copy_token", variant="default")
            yield Button("Close", id="btn_close", variant="primary")
        yield Footer()

    def _copy(self, text: str, what: str) -> None:
        self.app.copy_to_clipboard(text)
        self.query_one("#status_msg", Static).update(f"[green]{what} copied to clipboard.[/green]")

    def action_copy_link(self) -> None:
        enrollment = self.app.controller.session.enrollment
        self._copy(self.app.renderer.deep_link(enrollment), "Link")

    def action_copy_token(self) -> None:
        self._copy(self.app.controller.session.enrollment.token, "Token")

    async def action_close(self) -> None:
        log.info("Step 2: client setup closed")
        await self.app.close_session()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn_copy_link":
            self.action_copy_link()
        elif event.button.id == "btn_copy_token":
            self.action_copy_token()
        elif event.button.id == "btn_close":
            await self.action_close()
