# Fixed texts shown by the assistant
# Capabilities: answer to "Was kannst du?", grouped by intent family
# Expert addendum: appended when expert mode is on
# Unknown: shown when no scorer matched
CAPABILITIES_TEXT = """Hallo! Ich bin Tally, dein Assistent.
Hier ist, was ich alles kann:

📋 Aufgaben
  „Erstelle eine Aufgabe für morgen"
  „Lösche die letzte Aufgabe"
  „Verschiebe alle auf Montag"
  „Verschiebe Report auf Freitag"
  „Markiere das als wichtig"

🔁 Wiederkehrend
  „Jeden Dienstag Standup"
  „Täglich Mails checken"
  „Alle 2 Wochen Reporting"

📊 Abfragen
  „Was steht heute an?"
  „Habe ich heute Meetings?"
  „Wie viel habe ich diese Woche gearbeitet?"
  „Welche Aufgaben sind überfällig?"
  „Was ist dringend?"
  „Welche Kunden habe ich?"

🔍 Muster & Hinweise
  „Warum wird das als optional vorgeschlagen?"
  „Welche Muster sind aktiv?"
  „Mach das optional"

💬 Kontext
  Ich merke mir die letzte Aufgabe.
  „Verschiebe das auf morgen" bezieht
  sich auf die zuletzt bearbeitete Aufgabe."""

EXPERT_MODE_ADDENDUM = """⚡ Erweiterter Modus aktiv
  Komplexe Filter, Batch-Aktionen
  und einfache Automatisierungen."""

CAPABILITIES_FOOTER = """─────────────────
Ich führe nur aus, was du sagst.
Keine Hintergrundanalyse, keine
eigenen Entscheidungen."""

UNKNOWN_TEXT = """Das habe ich nicht verstanden.

Beispiele:
• „Erstelle eine Aufgabe für morgen"
• „Verschiebe alle auf Montag"
• „Was steht heute an?"
• „Markiere das als wichtig"

Sag „Was kannst du?" für alle Funktionen."""

SUGGEST_HEADER = "Meintest du:"
DISAMBIGUATE_HEADER = "Welche Aufgabe meinst du?"


def capabilities_message(expert_mode: bool) -> str:
    parts = [CAPABILITIES_TEXT]
    if expert_mode:
        parts.append(EXPERT_MODE_ADDENDUM)
    parts.append(CAPABILITIES_FOOTER)
    return "\n\n".join(parts)


def numbered(header: str, labels: list[str]) -> str:
    lines = [f"{i}. {label}" for i, label in enumerate(labels, start=1)]
    return "\n".join([header, *lines])
