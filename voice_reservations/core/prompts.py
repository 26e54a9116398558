"""
Fixed instruction strings sent to the vendors.

All prompts are in Czech, the spoken language of the reservations. Prompts
that mention today's date are built per call.
"""

from datetime import date as Date
from typing import Optional

TRANSCRIPTION_LANGUAGE = "cs"

# Domain vocabulary hint for low-frequency reservation terms
VOCABULARY_HINT = (
    "Toto je nahrávka v českém jazyce. Rezervace, termín, klient, "
    "pondělí, úterý, středa, čtvrtek, pátek, sobota, neděle, "
    "leden, únor, březen, duben, květen, červen, červenec, srpen, "
    "září, říjen, listopad, prosinec."
)

EXTRACTION_TEMPERATURE = 0.1


def _today(today: Optional[Date]) -> str:
    return (today or Date.today()).isoformat()


def extraction_system_prompt(today: Optional[Date] = None) -> str:
    """System prompt asking for a four-key reservation JSON object."""
    return f"""Jsi asistent pro extrakci dat rezervací z hlasových příkazů.
Analyzuj text a extrahuj následující informace:
- clientName: Jméno klienta (např. "Jan Novák", "Marie Svobodová")
- date: Datum rezervace ve formátu YYYY-MM-DD
- time: Čas rezervace ve formátu HH:MM (pokud je zmíněn)
- notes: Další poznámky nebo detaily

Odpověz POUZE validním JSON objektem bez dalšího textu.
Příklad odpovědi: {{"clientName": "Jan Novák", "date": "2026-01-20", "time": "14:00", "notes": ""}}

Pokud je zmíněn den v týdnu (pondělí, úterý, atd.), převeď ho na konkrétní datum.
Dnešní datum je {_today(today)}."""


def multimodal_instructions(today: Optional[Date] = None) -> str:
    """Instructions for the single-call audio transcription + extraction."""
    return f"""DŮLEŽITÉ: Toto audio je v ČESKÉM jazyce (čeština, Czech language, NOT Polish).
Přepiš audio do textu v češtině. Pak z přepsaného textu extrahuj data rezervace.

Česká slova která mohou zaznít: rezervace, termín, pondělí, úterý, středa, čtvrtek, pátek, sobota, neděle.
Česká jména: Novák, Svoboda, Dvořák, Černý, Procházka, Kučera, Veselý, Horák, Němec, Pokorný.

{extraction_system_prompt(today)}

Odpověz ve formátu:
TRANSCRIPTION: [přepsaný text v češtině]
RESERVATION: [JSON objekt s daty rezervace]"""


def live_system_instruction(today: Optional[Date] = None) -> str:
    """System instruction for streaming sessions."""
    return f"""Jsi asistent pro vytváření rezervací v českém jazyce.
Tvým úkolem je:
1. Přepsat co uživatel říká v češtině
2. Extrahovat data rezervace: jméno klienta, datum, čas, poznámky

DŮLEŽITÉ: Audio je v ČESKÉM jazyce (čeština, Czech language, NOT Polish).
Česká jména: Novák, Svoboda, Dvořák, Černý, Procházka.
Dny: pondělí, úterý, středa, čtvrtek, pátek, sobota, neděle.

Odpovídej stručně. Když máš všechna data, řekni:
"Rezervace pro [jméno] na [datum] v [čas]"

Dnešní datum je {_today(today)}."""


REALTIME_TRANSCRIPTION_INSTRUCTIONS = (
    "Uživatel mluví česky. Vždy přepisuj v češtině. "
    "Extrahuj rezervační data: jméno, datum, čas."
)


def realtime_session_instructions(today: Optional[Date] = None) -> str:
    """Instructions the realtime session is created with."""
    return f"""Jsi asistent pro vytváření rezervací. Uživatel ti řekne rezervaci v češtině.
Tvým úkolem je:
1. Přepsat co uživatel říká
2. Extrahovat data rezervace: jméno klienta, datum, čas, poznámky

Odpovídej stručně v češtině. Když máš všechna data, řekni je ve formátu:
"Rezervace pro [jméno] na [datum] v [čas]"

Dnešní datum je {_today(today)}.
Pokud uživatel řekne den v týdnu (pondělí, úterý...), převeď ho na konkrétní datum."""


def final_extraction_request(spoken: str) -> str:
    """Text-only turn requested when the user stops a realtime session."""
    return f"""Uživatel řekl: "{spoken}".
Extrahuj z toho rezervaci a vrať ji ve formátu: "Rezervace pro [jméno] na [datum ve formátu DD.MM.RRRR] v [čas]".
Pokud nějaký údaj chybí, vynech ho."""
