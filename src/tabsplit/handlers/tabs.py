from __future__ import annotations

from aiogram import F, Router
from aiogram.filters import Command, CommandObject, ExceptionTypeFilter
from aiogram.types import ErrorEvent, Message

from tabsplit.api.schemas import (
    ClaimsRequest,
    CreateTransactionRequest,
    ReceiptItemIn,
    ReceiptRequest,
    TipRequest,
    TransactionOut,
)
from tabsplit.api.service import TransactionAPI, get_global_api
from tabsplit.config import get_settings
from tabsplit.db.models import Member
from tabsplit.errors import NotFoundError, TabSplitError, ValidationError
from tabsplit.handlers.cards import format_activity, format_tab_card, parse_mode, parse_receipt_lines
from tabsplit.logging import get_logger
from tabsplit.state import state

tabs_router = Router()

USAGE = (
    "/join - join this group's roster\n"
    "/newtab even|items - start a tab\n"
    "/receipt followed by '<name> <price>' lines - attach the receipt\n"
    "/claim <item number> - claim or unclaim an item (itemized tabs)\n"
    "/tip <amount> - set the tip (tab creator)\n"
    "/finalize - lock the amounts (tab creator)\n"
    "/tab [id] - show or switch the current tab\n"
    "/canceltab - cancel the current tab (tab creator)\n"
    "/history - your finalized tabs"
)


def _group_id(message: Message) -> str:
    return str(message.chat.id)


def _actor(message: Message) -> Member:
    user = message.from_user
    if user is None:
        raise ValidationError("Unknown sender")
    return Member(id=str(user.id), display_name=user.full_name)


def _current_tab_id(message: Message) -> str:
    tab_id = state.get_current_tab(message.chat.id)
    if tab_id is None:
        raise NotFoundError("No tab selected. Start one with /newtab even|items")
    return tab_id


async def _answer_card(message: Message, api: TransactionAPI, tab: TransactionOut, footer: str = "") -> None:
    settings = get_settings()
    members = await api.directory.list_members(tab.group_id)
    names = {member.id: member.display_name for member in members}
    text = format_tab_card(tab, names, settings.currency, settings.zoneinfo)
    if footer:
        text += f"\n\n{footer}"
    await message.answer(text)


@tabs_router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    await message.answer(USAGE)


@tabs_router.message(Command("join"))
async def cmd_join(message: Message) -> None:
    api = get_global_api()
    actor = _actor(message)
    await api.directory.add_member(_group_id(message), actor)
    await message.answer(f"{actor.display_name} joined the group.")


@tabs_router.message(Command("newtab"))
async def cmd_newtab(message: Message, command: CommandObject) -> None:
    api = get_global_api()
    try:
        mode = parse_mode(command.args or "")
    except ValueError as exc:
        await message.answer(f"{exc}\nUsage: /newtab even|items")
        return

    actor = _actor(message)
    tab = await api.create_transaction(actor.id, CreateTransactionRequest(group_id=_group_id(message), mode=mode))
    state.set_current_tab(message.chat.id, tab.id)
    await _answer_card(message, api, tab, "Attach the receipt with /receipt")


@tabs_router.message(Command("tab"))
async def cmd_tab(message: Message, command: CommandObject) -> None:
    api = get_global_api()
    actor = _actor(message)
    prefix = (command.args or "").strip()

    if prefix:
        tabs = await api.list_transactions(actor.id, _group_id(message))
        matches = [tab for tab in tabs if tab.id.startswith(prefix)]
        if len(matches) != 1:
            await message.answer("No single tab matches that id.")
            return
        state.set_current_tab(message.chat.id, matches[0].id)
        await _answer_card(message, api, matches[0])
        return

    tab = await api.get_transaction(actor.id, _current_tab_id(message))
    await _answer_card(message, api, tab)


@tabs_router.message(Command("receipt"))
async def cmd_receipt(message: Message, command: CommandObject) -> None:
    api = get_global_api()
    try:
        lines = parse_receipt_lines(command.args or "")
    except ValueError as exc:
        await message.answer(str(exc))
        return

    actor = _actor(message)
    request = ReceiptRequest(items=[ReceiptItemIn(name=name, price=price) for name, price in lines])
    tab = await api.attach_receipt(actor.id, _current_tab_id(message), request)
    await _answer_card(message, api, tab)


@tabs_router.message(Command("claim"))
async def cmd_claim(message: Message, command: CommandObject) -> None:
    api = get_global_api()
    actor = _actor(message)
    tab = await api.get_transaction(actor.id, _current_tab_id(message))

    try:
        index = int((command.args or "").strip())
    except ValueError:
        await message.answer("Usage: /claim <item number>")
        return
    if not 1 <= index <= len(tab.items):
        await message.answer(f"Pick an item between 1 and {len(tab.items)}.")
        return

    item = tab.items[index - 1]
    claimers = set(tab.claims.get(item.id, []))
    claimers.symmetric_difference_update({actor.id})
    await api.set_claims(actor.id, tab.id, item.id, ClaimsRequest(member_ids=sorted(claimers)))
    await _answer_card(message, api, await api.get_transaction(actor.id, tab.id))


@tabs_router.message(Command("tip"))
async def cmd_tip(message: Message, command: CommandObject) -> None:
    api = get_global_api()
    actor = _actor(message)
    amount = (command.args or "").strip().replace(",", ".")
    if not amount:
        await message.answer("Usage: /tip <amount>")
        return
    tab = await api.set_tip(actor.id, _current_tab_id(message), TipRequest(amount=amount))
    await _answer_card(message, api, tab)


@tabs_router.message(Command("finalize"))
async def cmd_finalize(message: Message) -> None:
    api = get_global_api()
    actor = _actor(message)
    tab_id = _current_tab_id(message)
    await api.finalize(actor.id, tab_id)
    state.clear_current_tab(message.chat.id)
    await _answer_card(message, api, await api.get_transaction(actor.id, tab_id))


@tabs_router.message(Command("canceltab"))
async def cmd_canceltab(message: Message) -> None:
    api = get_global_api()
    actor = _actor(message)
    tab = await api.cancel_transaction(actor.id, _current_tab_id(message))
    state.clear_current_tab(message.chat.id)
    await message.answer(f"Tab {tab.id[:8]} cancelled.")


@tabs_router.message(Command("history"))
async def cmd_history(message: Message) -> None:
    api = get_global_api()
    actor = _actor(message)
    entries = await api.member_activity(actor.id)
    await message.answer(format_activity(entries, get_settings().currency))


@tabs_router.error(ExceptionTypeFilter(TabSplitError), F.update.message.as_("message"))
async def on_tab_error(event: ErrorEvent, message: Message) -> None:
    get_logger(__name__).info("handler.rejected", error=type(event.exception).__name__, reason=str(event.exception))
    await message.answer(str(event.exception))
