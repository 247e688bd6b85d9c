"""Plain-text email templates.

Rendering is a pure function of the view passed in: no clock, no lookups, no
randomness. The same view always renders the same subject and body.

Templates are Jinja2 strings. Every value a template touches has a default,
so a view with empty optional fields still renders.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from jinja2 import DictLoader, Environment, StrictUndefined

TradeRole = Literal["received", "sent"]
StatusRole = Literal["offerer", "receiver"]

SECURITY_CONTACT = "security@tradeapp.com"


@dataclass(frozen=True)
class UserDetails:
    id: str
    name: str = "User"
    email: str = "No email"


@dataclass(frozen=True)
class GameDetails:
    id: str
    title: str = "Unknown Game"
    publisher: str = "Unknown Publisher"
    price: str = "N/A"
    condition: str = "N/A"


@dataclass(frozen=True)
class TradeView:
    """Everything a trade email shows, already resolved from ids."""

    trade_id: str
    offerer: UserDetails
    receiver: UserDetails
    offered_games: tuple[GameDetails, ...] = field(default_factory=tuple)
    requested_games: tuple[GameDetails, ...] = field(default_factory=tuple)
    status: str = "pending"


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    body: str


TEMPLATES = {
    "trade_offer.txt": """\
New Trade Offer {{ trade_type | upper }}!

Trade ID: {{ view.trade_id }}

Offerer: {{ view.offerer | user_line }}
Receiver: {{ view.receiver | user_line }}

Offered Games:
{{ offered_games }}

Requested Games:
{{ requested_games }}

Status: {{ view.status | default('pending', true) }}

{% if trade_type == "received" %}Please review and accept or reject this trade offer.\
{% else %}The other user will be notified to review your offer.{% endif %}
""",
    "status_update.txt": """\
Trade Offer {{ status | upper }}!

Trade ID: {{ view.trade_id }}

{% if role == "offerer" %}Your trade offer to {{ view.receiver.name | default('User', true) }} was {{ status }}.\
{% else %}You {{ status }} the trade offer from {{ view.offerer.name | default('User', true) }}.{% endif %}

Offerer: {{ view.offerer | user_line }}
Receiver: {{ view.receiver | user_line }}

Offered Games:
{{ offered_games }}

Requested Games:
{{ requested_games }}

Status: {{ status }}

{% if status == "accepted" %}The trade has been completed and game ownership has been transferred.\
{% else %}No changes have been made to game ownership.{% endif %}
""",
    "password_changed.txt": """\
Hello {{ name | default('User', true) }},

This is a confirmation that the password for your account was changed at {{ timestamp }}.

If you did not make this change, please contact us immediately at {{ security_contact }}.

Thank you,
Game Trading Platform Security Team
""",
}

def _user_line(user: UserDetails) -> str:
    return f"{user.name or 'User'} - {user.email or 'No email'} - {user.id}"


_env = Environment(
    loader=DictLoader(TEMPLATES),
    autoescape=False,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)
_env.filters["user_line"] = _user_line


def format_games_text(games: tuple[GameDetails, ...] | list[GameDetails]) -> str:
    """One block per game, separated by a blank line. An empty list is "None"."""
    if not games:
        return "None"
    return "\n\n".join(
        f"{game.title} by {game.publisher}\nPrice: {game.price}\nCondition: {game.condition}"
        for game in games
    )


def render_trade_offer_email(view: TradeView, role: TradeRole) -> RenderedEmail:
    """Email for a newly created offer; `role` is the recipient's side of it."""
    subject = "New Trade Offer Received" if role == "received" else "Your Trade Offer Was Sent"
    body = _env.get_template("trade_offer.txt").render(
        view=view,
        trade_type=role,
        offered_games=format_games_text(view.offered_games),
        requested_games=format_games_text(view.requested_games),
    )
    return RenderedEmail(subject, body)


def render_status_update_email(view: TradeView, role: StatusRole) -> RenderedEmail:
    """Email for an accepted or rejected offer, worded for the offerer or the receiver."""
    status = view.status
    status_text = status.capitalize()
    if role == "offerer":
        subject = f"Your Trade Offer Was {status_text}"
    else:
        subject = f"You {status_text} a Trade Offer"
    body = _env.get_template("status_update.txt").render(
        view=view,
        role=role,
        status=status,
        offered_games=format_games_text(view.offered_games),
        requested_games=format_games_text(view.requested_games),
    )
    return RenderedEmail(subject, body)


def render_password_change_email(name: str | None, timestamp: str) -> RenderedEmail:
    body = _env.get_template("password_changed.txt").render(
        name=name or "",
        timestamp=timestamp,
        security_contact=SECURITY_CONTACT,
    )
    return RenderedEmail("Password Changed", body)
