"""Agent prompt templates."""
from datetime import datetime
from typing import Optional

from app.core.config import settings
from app.services.business.base import BusinessContext


def format_menu(context: BusinessContext) -> str:
    """Render the menu grouped by category."""
    if not context.menu:
        return "Menu not available right now."

    sections = {}
    for item in context.menu:
        if not item.available:
            continue
        sections.setdefault(item.category or "other", []).append(item)

    lines = []
    for category, items in sections.items():
        lines.append(f"{category.upper()}:")
        for item in items:
            price = f" - {item.price:.2f}" if item.price is not None else ""
            description = f" ({item.description})" if item.description else ""
            lines.append(f"  - {item.name}{price}{description}")
    return "\n".join(lines)


def format_availability(context: BusinessContext) -> str:
    free_tables = [t for t in context.tables if t.status == "available"]
    capacities = sorted({t.capacity for t in free_tables})
    slots = [slot.time for slot in context.available_slots if slot.available]

    tables_text = (
        f"{len(free_tables)} tables free, seating up to {', '.join(map(str, capacities))} people"
        if free_tables
        else "No table information available"
    )
    slots_text = ", ".join(slots) if slots else "Ask the caller for their preferred time"
    return f"Tables: {tables_text}\nTime slots today: {slots_text}"


def get_system_prompt(context: BusinessContext, now: Optional[datetime] = None) -> str:
    """Generate system prompt for the agent."""
    now = now or datetime.now()
    farewell = settings.farewell_phrases[0] if settings.farewell_phrases else "goodbye"
    return f"""You are a friendly and professional phone assistant for {context.name}, a {context.type}.
Today is {now.strftime('%A %d %B %Y')} and it is {now.strftime('%H:%M')}.

BUSINESS INFORMATION:
Phone: {context.phone}
Address: {context.address}
Opening hours: {context.hours}

MENU:
{format_menu(context)}

AVAILABILITY:
{format_availability(context)}

Your responsibilities:
1. Answer questions about the menu, opening hours and location
2. Take table reservations: you need the name, number of people, date and time
3. Ask for any missing reservation detail, one question at a time

When responding:
- Keep responses short and natural (1-2 sentences max), this is a phone call
- Never use lists, markdown or emojis
- Say prices and times the way a person would say them out loud
- When the caller has given all the reservation details and confirmed them, confirm
  the booking and end your reply with the marker {settings.reservation_marker}
- Use the marker only once per reservation and never explain it
- When the caller has nothing else to ask, thank them and say "{farewell}" to end the call
- If you do not know something, say so and offer to help with something else"""
