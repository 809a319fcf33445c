"""
Taxonomía de errores del sistema.
"""


class ConfigurationWarning(UserWarning):
    """Valor numérico inválido en ENV; se reemplaza por el default"""


class UpstreamUnreachable(Exception):
    """El origen (o el caché delante de él) no respondió a un probe"""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
