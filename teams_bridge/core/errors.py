"""Fehlerklassen der Teams Bridge.

Nur ``AuthError`` wird nach außen sichtbar (401). Alle anderen Fehler werden
im Dispatcher geloggt und mit einer generischen Bestätigung beantwortet, damit
Teams das Event nicht erneut zustellt.
"""


class BridgeError(Exception):
    """Basisklasse aller Fehler der Bridge."""


class AuthError(BridgeError):
    """Token fehlt, ist ungültig oder gehört zu keiner bekannten Bot-Identität."""


class DirectoryError(BridgeError):
    """Tenant- oder Bot-Lookup fehlgeschlagen."""


class TokenError(BridgeError):
    """Kein Access-Token vom Token-Endpunkt erhalten."""


class AnswerError(BridgeError):
    """Das RAG-Backend hat keine verwertbare Antwort geliefert."""


class RelayError(BridgeError):
    """Senden oder Aktualisieren einer Teams-Nachricht fehlgeschlagen."""
