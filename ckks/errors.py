"""
Hierarquia de exceções do motor CKKS.

Todos os erros são locais e síncronos: indicam uso incorreto da API
(operandos incompatíveis, cadeia de módulos esgotada, etc.) e não faz
sentido repetir a operação.
"""


class CKKSError(Exception):
    """Exceção base do pacote."""


class EvaluatorError(CKKSError, ValueError):
    """Erro em uma operação homomórfica do avaliador."""


class ModulusMismatch(EvaluatorError):
    """Operandos em posições diferentes da cadeia de módulos."""


class ScaleMismatch(EvaluatorError):
    """Operandos com escalas incompatíveis."""


class ScaleOutOfBounds(EvaluatorError):
    """A escala resultante não cabe no módulo ativo."""


class ChainExhausted(EvaluatorError):
    """Não há mais primos para descartar na cadeia."""


class InvalidSize(EvaluatorError):
    """Número de componentes do ciphertext inválido para a operação."""


class InvalidTarget(EvaluatorError):
    """Posição alvo inalcançável (anterior ou de outro contexto)."""


class EncodingError(CKKSError, ValueError):
    """Erro de codificação ou decodificação."""


class TooManyValues(EncodingError):
    """Mais valores do que slots disponíveis."""


class MalformedPlaintext(EncodingError):
    """Plaintext com número de coeficientes ou limbs inesperado."""


class ValueOutOfRange(EncodingError):
    """Valores codificados grandes demais para o módulo ativo."""
