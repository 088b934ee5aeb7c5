from __future__ import annotations
import asyncio
from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import Footer, Button, Static, Select, Label
from textual.containers import Horizontal, VerticalScroll
from widgets.wizard_header import WizardHeader
from widgets.qr_view import QRView
from enrollment.artifacts import materialize, qr_config, save_all, save_config
from logger import log


class ManualConfigurationScreen(Screen):
    """Step 3: show, copy and save the WireGuard configs of the new device."""

    BINDINGS = [
        ("s", "save_selected", "Save"),
        ("a", "save_all", "Save all"),
        ("escape", "close", "Close"),
    ]

    def __init__(self) -> None:
        super().__init__()
        state = self.app.controller.session.state
        self._keys = state.manual_config
        self._configs = {c.network_id: c for c in state.registration.configs}
        self._selected = state.registration.configs[0]

    def compose(self) -> ComposeResult:
        options = [(c.network_name, c.network_id) for c in self._configs.values()]
        yield WizardHeader()
        with VerticalScroll(id="content"):
            yield Static("Device added", classes="title")
            if self._keys.operator_held:
                yield Static(
                    "The private key stays with you: replace [bold]YOUR_PRIVATE_KEY[/bold] "
                    "in the configuration before importing it.",
                    classes="hint",
                )
            else:
                yield Static(
                    "[yellow]The generated private key is shown only now. Save the "
                    "configuration before closing.[/yellow]"
                )
            yield Label("Location:")
            yield Select(
                options=options, id="sel_config", allow_blank=False,
                value=self._selected.network_id,
            )
            yield Static("", id="config_text", markup=False)
            yield QRView(id="qr")
            yield Static("", id="status_msg")
        with Horizontal(id="nav_buttons"):
            yield Button("Copy", id="btn_copy", variant="default")
            yield Button("Save", id="btn_save", variant="default")
            yield Button("Save all (zip)", id="btn_save_all", variant="default")
            yield Button("Close", id="btn_close", variant="primary")
        yield Footer()

    def on_mount(self) -> None:
        self._show_selected()

    def _show_selected(self) -> None:
        self.query_one("#config_text", Static).update(materialize(self._selected, self._keys))
        self.query_one("#qr", QRView).show(qr_config(self._selected, self._keys))

    def on_select_changed(self, event: Select.Changed) -> None:
        if event.select.id == "sel_config" and event.value in self._configs:
            self._selected = self._configs[event.value]
            self._show_selected()

    def _status(self, msg: str) -> None:
        self.query_one("#status_msg", Static).update(msg)

    def action_copy(self) -> None:
        self.app.copy_to_clipboard(materialize(self._selected, self._keys))
        self._status("[green]Configuration copied to clipboard.[/green]")

    async def _save(self, func, *args) -> None:
        loop = asyncio.get_running_loop()
        try:
            path = await loop.run_in_executor(
                None, lambda: func(self.app.settings.download_dir, *args, self._keys)
            )
        except OSError as e:
            log.error("Saving configuration failed: %s", e)
            self._status(f"[red]Failed to save: {e}[/red]")
            return
        self._status(f"[green]Saved to {path}[/green]")

    async def action_save_selected(self) -> None:
        await self._save(save_config, self._selected)

    async def action_save_all(self) -> None:
        await self._save(save_all, list(self._configs.values()))

    async def action_close(self) -> None:
        log.info("Step 3: manual configuration closed")
        await self.app.close_session()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn_copy":
            self.action_copy()
        elif event.button.id == "btn_save":
            await self.action_save_selected()
        elif event.button.id == "btn_save_all":
            await self.action_save_all()
        elif event.button.id == "btn_close":
            await self.action_close()
