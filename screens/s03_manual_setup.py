from __future__ import annotations
import asyncio
from typing import Dict
from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import (
    Footer, Button, Static, Select,
    Input, Label, RadioSet, RadioButton,
)
from textual.containers import Vertical, Horizontal, VerticalScroll
from widgets.wizard_header import WizardHeader
from enrollment.controller import ErrorKind, address_field
from network.addresses import ERROR_MESSAGES
from state import KeyChoice, ManualForm
from logger import log


class ManualSetupScreen(Screen):
    """Step 2b: name the device, pick keys and addresses, then register it."""

    BINDINGS = [
        ("escape", "go_back", "Back"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self.last_errors: Dict[str, str] = {}
        self._pending_loads = 0

    @property
    def _state(self):
        return self.app.controller.session.state

    def compose(self) -> ComposeResult:
        state = self._state
        form = state.form
        edit = state.edit_mode
        location_options = [(loc.name, loc.id) for loc in self.app.locations]
        known_ids = {loc.id for loc in self.app.locations}

        yield WizardHeader()
        with VerticalScroll(id="form"):
            title = "Edit network device" if edit else "Manual WireGuard setup"
            yield Static(title, classes="title")
            yield Label("Device name:")
            yield Input(value=form.name, placeholder="e.g. laptop", id="inp_name")
            with Vertical(id="key_fields"):
                yield Label("Key pair:")
                with RadioSet(id="rs_keys"):
                    yield RadioButton(
                        "Generate a key pair", id="rb_auto",
                        value=form.key_choice is KeyChoice.AUTO,
                    )
                    yield RadioButton(
                        "Use my own public key", id="rb_manual",
                        value=form.key_choice is KeyChoice.MANUAL,
                    )
                with Vertical(id="pubkey_fields"):
                    yield Label("WireGuard public key:")
                    yield Input(value=form.public_key, placeholder="44 characters, base64", id="inp_pubkey")
            yield Label("Location:")
            yield Select(
                options=location_options, id="sel_location", prompt="All locations",
                value=form.location_id if form.location_id in known_ids else Select.NULL,
                disabled=edit,
            )
            yield Vertical(id="address_fields")
            yield Label("Description (optional):")
            yield Input(value=form.description, id="inp_description")
            yield Static("", id="err_msg")
        with Horizontal(id="nav_buttons"):
            if not edit:
                yield Button("← Back", id="btn_back", variant="default")
            yield Button("Cancel", id="btn_cancel", variant="default")
            yield Button("Save" if edit else "Register →", id="btn_next", variant="primary")
        yield Footer()

    async def on_mount(self) -> None:
        state = self._state
        self.query_one("#pubkey_fields").display = state.form.key_choice is KeyChoice.MANUAL
        self.query_one("#key_fields").display = not state.edit_mode
        await self._render_addresses()

    # -- Addresses -----------------------------------------------------------

    async def _render_addresses(self) -> None:
        state = self._state
        container = self.query_one("#address_fields", Vertical)
        await container.remove_children()
        rows = []
        for idx, rec in enumerate(state.recommendations):
            part = state.form.modifiable_parts[idx] if idx < len(state.form.modifiable_parts) else rec.modifiable_part
            rows.append(
                Horizontal(
                    Label(f"{rec.network_part}"),
                    Input(value=part, id=f"inp_{address_field(idx)}"),
                    Label(f"/{rec.network_prefix}"),
                    classes="address_row",
                )
            )
        if rows:
            await container.mount(Label("Assigned addresses:"), *rows)

    async def on_select_changed(self, event: Select.Changed) -> None:
        if event.select.id != "sel_location" or self._state.edit_mode:
            return
        if self.app.controller.busy:
            # the running submission owns the form
            await self._reset_location_select()
            return
        if event.value is Select.NULL:
            self.app.controller.clear_location()
            await self._render_addresses()
            return
        location_id = int(event.value)
        if not self._pending_loads and location_id == self._state.recommended_location:
            return
        log.info("Step 2b: location changed to %s", location_id)
        asyncio.create_task(self._load_location(location_id))

    async def _reset_location_select(self) -> None:
        """Point the Select back at the location the address rows belong to."""
        location_id = self._state.recommended_location
        sel = self.query_one("#sel_location", Select)
        sel.value = location_id if location_id is not None else Select.NULL
        await self._render_addresses()

    async def _load_location(self, location_id: int) -> None:
        container = self.query_one("#address_fields", Vertical)
        self._pending_loads += 1
        container.disabled = True
        try:
            result = await self.app.controller.change_location(location_id)
        finally:
            self._pending_loads -= 1
        if not self.is_current or self.app.controller.session is None:
            return
        if not self._pending_loads:
            container.disabled = False
        if result.kind is ErrorKind.STALE and self._pending_loads:
            # a newer selection is still loading
            return
        if result.kind in (ErrorKind.BUSY, ErrorKind.STALE):
            log.info("Step 2b: location %s not applied (%s)", location_id, result.kind.value)
            await self._reset_location_select()
            return
        if result.ok:
            self._clear_error()
            await self._render_addresses()
        else:
            await self._render_addresses()
            self._show_error(result.message)

    # -- Form ------------------------------------------------------------------

    def on_radio_set_changed(self, event: RadioSet.Changed) -> None:
        if event.radio_set.id == "rs_keys":
            manual = event.pressed.id == "rb_manual"
            self.query_one("#pubkey_fields").display = manual

    def _collect(self) -> ManualForm:
        state = self._state
        manual = self.query_one("#rb_manual", RadioButton).value
        sel = self.query_one("#sel_location", Select)
        location_id = None if sel.value is Select.NULL else int(sel.value)
        parts = [
            self.query_one(f"#inp_{address_field(idx)}", Input).value.strip()
            for idx in range(len(state.recommendations))
        ]
        return ManualForm(
            name=self.query_one("#inp_name", Input).value.strip(),
            key_choice=KeyChoice.MANUAL if manual else KeyChoice.AUTO,
            public_key=self.query_one("#inp_pubkey", Input).value.strip(),
            location_id=location_id,
            modifiable_parts=parts,
            description=self.query_one("#inp_description", Input).value.strip(),
        )

    def _clear_error(self) -> None:
        self.last_errors = {}
        self.query_one("#err_msg", Static).update("")

    def _show_error(self, msg: str, field_errors: Dict[str, str] = None) -> None:
        self.last_errors = dict(field_errors or {})
        lines = [f"[red]Error: {msg}[/red]"] if msg else []
        for field_name, err in (field_errors or {}).items():
            lines.append(f"[red]  {field_name}: {ERROR_MESSAGES.get(err, err)}[/red]")
        self.query_one("#err_msg", Static).update("\n".join(lines))

    def action_submit(self) -> None:
        if self.app.controller.busy:
            return
        form = self._collect()
        self.query_one("#btn_next", Button).disabled = True
        self.query_one("#err_msg", Static).update("Registering device…")
        asyncio.create_task(self._submit(form))

    async def _submit(self, form: ManualForm) -> None:
        result = await self.app.controller.submit_manual(form)
        if result.kind is ErrorKind.STALE or not self.is_current:
            return
        self.query_one("#btn_next", Button).disabled = False
        if result.ok and result.closed:
            log.info("Step 2b: nothing left to show, closing")
            await self.app.close_session()
        elif result.ok:
            from screens.s04_manual_configuration import ManualConfigurationScreen
            self.app.switch_screen(ManualConfigurationScreen())
        else:
            self._show_error(result.message, result.field_errors)

    def action_go_back(self) -> None:
        if self._state.edit_mode or self.app.controller.busy:
            return
        self.app.controller.back_to_start()
        self.app.pop_screen()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn_back":
            self.action_go_back()
        elif event.button.id == "btn_cancel":
            await self.app.close_session()
        elif event.button.id == "btn_next":
            self.action_submit()
