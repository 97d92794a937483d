class CotizadorError(Exception):
    """Errores base del cotizador."""


class ValidationError(CotizadorError):
    """Datos de entrada invalidos; no se realizo ningun cambio."""


class NotFoundError(CotizadorError):
    """El recurso solicitado no existe."""


class ClientNotFoundError(NotFoundError):
    """El cliente referenciado no existe."""


class ItemNotFoundError(NotFoundError):
    """Uno o mas items referenciados no existen."""


class QuotationNotFoundError(NotFoundError):
    """La cotizacion no existe."""


class ConflictError(CotizadorError):
    """Violacion de unicidad."""


class ClientExistsError(ConflictError):
    """Ya existe un cliente con el mismo email."""


class IntegrityBlockedError(CotizadorError):
    """La eliminacion esta bloqueada por registros que lo referencian."""


class CurrencyFormatError(CotizadorError):
    """Un monto no puede representarse como moneda."""
