"""Form descriptors the client renders to collect missing action arguments."""

from __future__ import annotations

from typing import Any

from core.registry.contacts import ContactsTokensService

INTERACTIVE_MESSAGE = "I need more information to complete this action. Please provide:"

_STATIC_COMPONENTS: dict[str, dict[str, Any]] = {
    "amount": {
        "type": "input",
        "inputType": "number",
        "label": "Amount",
        "placeholder": "Enter amount",
        "validation": "positive_number",
    },
    "name": {
        "type": "input",
        "inputType": "text",
        "label": "Name",
        "placeholder": "Enter a name",
        "validation": "required",
    },
    "description": {
        "type": "textarea",
        "label": "Description",
        "placeholder": "Enter description",
        "rows": 3,
    },
    "memo": {
        "type": "input",
        "inputType": "text",
        "label": "Memo",
        "placeholder": "Enter memo for topic",
    },
    "message": {
        "type": "textarea",
        "label": "Message",
        "placeholder": "Enter message to send",
        "rows": 2,
    },
    "topicId": {
        "type": "input",
        "inputType": "text",
        "label": "Topic ID",
        "placeholder": "Enter topic ID",
        "validation": "topic_id",
    },
}


def create_interactive_component(arg_name: str, contacts: ContactsTokensService) -> dict[str, Any]:
    if arg_name in ("recipient", "to"):
        return {
            "name": arg_name,
            "type": "combobox",
            "label": "Select Recipient",
            "placeholder": "Choose a contact or enter address",
            "options": contacts.get_contact_options(),
            "allowCustom": True,
            "validation": "address",
        }
    if arg_name in ("fromToken", "toToken"):
        direction = "from" if arg_name == "fromToken" else "to"
        return {
            "name": arg_name,
            "type": "combobox",
            "label": f"{direction.capitalize()} Token",
            "placeholder": f"Select token to swap {direction}",
            "options": contacts.get_token_options(),
            "allowCustom": False,
        }
    if arg_name == "tokenId":
        return {
            "name": arg_name,
            "type": "combobox",
            "label": "Token",
            "placeholder": "Select token",
            "options": contacts.get_token_options(),
            "allowCustom": True,
            "validation": "token_id",
        }
    if arg_name in _STATIC_COMPONENTS:
        return {"name": arg_name, **_STATIC_COMPONENTS[arg_name]}
    return {
        "name": arg_name,
        "type": "input",
        "inputType": "text",
        "label": arg_name[:1].upper() + arg_name[1:],
        "placeholder": f"Enter {arg_name}",
    }


def generate_interactive_components(
    action_type: str | None,
    missing: list[str],
    args: dict[str, Any] | None,
    contacts: ContactsTokensService,
) -> list[dict[str, Any]]:
    """One component per missing argument, prefilled with any partial value."""
    components = []
    for arg_name in missing:
        component = create_interactive_component(arg_name, contacts)
        if args and args.get(arg_name) not in (None, ""):
            component["defaultValue"] = args[arg_name]
        if action_type:
            component["actionType"] = action_type
        components.append(component)
    return components


def generate_interactive_data(
    missing: list[str] | None,
    message_type: str | None,
    contacts: ContactsTokensService,
    action_type: str | None = None,
    args: dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    if not missing:
        return None
    return {
        "type": "argumentRequest",
        "message": INTERACTIVE_MESSAGE,
        "messageType": message_type,
        "components": generate_interactive_components(action_type, missing, args, contacts),
        "missingArgs": list(missing),
    }
