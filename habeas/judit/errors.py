from typing import Optional


class JuditError(Exception):
    """Base de todas as falhas do núcleo Judit."""


class JuditApiError(JuditError):
    """Falha de rede ou resposta HTTP de erro do backend."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class JuditValidationError(JuditError, ValueError):
    """Entrada rejeitada antes de qualquer chamada de rede."""


class SearchValidationError(JuditValidationError):
    pass


class TrackingValidationError(JuditValidationError):
    pass


class CooldownActiveError(JuditError):
    """A ação manual ainda está dentro da janela de cooldown."""

    def __init__(self, key: str, remaining_ms: int):
        super().__init__(f"Cooldown ativo para '{key}': aguarde {remaining_ms} ms")
        self.key = key
        self.remaining_ms = remaining_ms


class TrackingDeletedError(JuditError):
    """Monitoramento deletado não aceita mais pausa, reativação ou sincronização."""

    def __init__(self, tracking_id: str):
        super().__init__(f"Monitoramento {tracking_id} foi deletado")
        self.tracking_id = tracking_id


class InvalidTransitionError(JuditError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Transição inválida: {current} -> {target}")
        self.current = current
        self.target = target
