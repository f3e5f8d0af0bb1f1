"""View state: which page is shown and the current advisory message."""

from dataclasses import dataclass
from enum import Enum

from .models import Principal


class Page(str, Enum):
    HOME = "home"
    PRODUCT_DETAIL = "product_detail"
    CART = "cart"
    CHECKOUT = "checkout"
    LOGIN = "login"
    REGISTER = "register"
    ORDER_CONFIRMATION = "order_confirmation"


AUTH_PAGES = (Page.LOGIN, Page.REGISTER)


@dataclass
class AppState:
    """Per-session presentation state. Holds no cart or order data."""

    page: Page = Page.HOME
    selected_product_id: str | None = None
    advisory: str | None = None
    loading: bool = True

    def advise(self, message: str) -> None:
        self.advisory = message

    def dismiss_advisory(self) -> None:
        self.advisory = None

    def navigate(self, page: Page, product_id: str | None = None) -> None:
        self.page = page
        self.selected_product_id = product_id if page == Page.PRODUCT_DETAIL else None

    def on_principal_changed(self, principal: Principal | None) -> None:
        # Signing in from a login/register form lands on the home page
        if principal is not None and self.page in AUTH_PAGES:
            self.navigate(Page.HOME)
