from __future__ import annotations
from typing import List, Optional

from textual.app import App

from enrollment.controller import EnrollmentWizardController
from enrollment.delivery import DeliveryRenderer
from enrollment.errors import ApiError
from network.api import AdminApiClient
from settings import WizardSettings
from state import Location, Step, User
from logger import log


class EnrollmentWizard(App):
    """Device enrollment wizard for the VPN admin console."""

    CSS = """
    Screen {
        background: $surface;
    }
    .title {
        text-style: bold;
        color: $accent;
        margin-bottom: 1;
    }
    .hint {
        color: $text-muted;
    }
    #content {
        margin: 1 2;
    }
    #form {
        margin: 1 2;
    }
    #nav_buttons {
        dock: bottom;
        height: 3;
        align: center middle;
        margin: 1 2;
    }
    Button {
        margin: 0 1;
    }
    #err_msg {
        margin-top: 1;
        color: $error;
    }
    Input {
        margin-bottom: 1;
    }
    .address_row {
        height: auto;
    }
    .address_row Label {
        margin: 1 1 0 0;
    }
    .address_row Input {
        width: 20;
    }
    #config_text, #manual_text {
        border: solid $primary;
        padding: 0 1;
        margin: 1 0;
    }
    """

    BINDINGS = [("ctrl+q", "quit", "Quit")]

    def __init__(
        self,
        settings: WizardSettings,
        api: Optional[AdminApiClient] = None,
        username: Optional[str] = None,
        edit_device_id: Optional[int] = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.api = api or AdminApiClient(settings)
        self.controller = EnrollmentWizardController(self.api)
        self.renderer = DeliveryRenderer(settings.deep_link_scheme)
        self.username = username or settings.username
        self.edit_device_id = edit_device_id
        self.locations: List[Location] = []
        log.info("EnrollmentWizard started for %s", self.username)

    async def on_mount(self) -> None:
        try:
            devices = await self.api.get_user_devices(self.username)
            self.locations = await self.api.get_locations()
            user = User(username=self.username)
            if self.edit_device_id is not None:
                device = await self.api.get_network_device(self.edit_device_id)
                self.controller.open_edit(user, devices, device)
            else:
                self.controller.open(user, devices)
        except ApiError as e:
            log.error("Loading account %s failed: %s", self.username, e)
            await self.shutdown(
                message=f"Cannot load account '{self.username}': {e}", return_code=1
            )
            return
        await self.push_screen(self.screen_for_step())

    def screen_for_step(self):
        from screens.s01_start_choice import StartChoiceScreen
        from screens.s02_client_setup import ClientSetupScreen
        from screens.s03_manual_setup import ManualSetupScreen
        from screens.s04_manual_configuration import ManualConfigurationScreen

        screens = {
            Step.START_CHOICE: StartChoiceScreen,
            Step.CLIENT_SETUP: ClientSetupScreen,
            Step.MANUAL_SETUP: ManualSetupScreen,
            Step.MANUAL_CONFIGURATION: ManualConfigurationScreen,
        }
        return screens[self.controller.step]()

    async def close_session(self) -> None:
        """Cancel or finish: the session is discarded, not just hidden."""
        self.controller.close()
        await self.shutdown()

    async def shutdown(self, message: Optional[str] = None, return_code: int = 0) -> None:
        await self.api.close()
        self.exit(return_code=return_code, message=message)

    async def action_quit(self) -> None:
        await self.close_session()
