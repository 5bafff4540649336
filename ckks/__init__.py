# Pacote CKKS

from .ckks import CKKSCiphertext, CKKSPlaintext
from .constants import CKKSCryptographicParameters
from .encoder import CKKSEncoder
from .encryptor import CKKSDecryptor, CKKSEncryptor
from .errors import (
    ChainExhausted,
    CKKSError,
    EncodingError,
    EvaluatorError,
    InvalidSize,
    InvalidTarget,
    MalformedPlaintext,
    ModulusMismatch,
    ScaleMismatch,
    ScaleOutOfBounds,
    TooManyValues,
    ValueOutOfRange,
)
from .evaluator import CKKSEvaluator
from .key_factory import (
    CKKSKeyFactory,
    create_key_factory,
)
from .keys import GaloisKeys, PublicKey, RelinKeys, SecretKey
from .modulus import ChainPosition, CKKSContext

__all__ = [
    "CKKSCiphertext",
    "CKKSPlaintext",
    "CKKSCryptographicParameters",
    "CKKSContext",
    "ChainPosition",
    "CKKSEncoder",
    "CKKSEncryptor",
    "CKKSDecryptor",
    "CKKSEvaluator",
    "CKKSKeyFactory",
    "create_key_factory",
    "SecretKey",
    "PublicKey",
    "RelinKeys",
    "GaloisKeys",
    "CKKSError",
    "EvaluatorError",
    "ModulusMismatch",
    "ScaleMismatch",
    "ScaleOutOfBounds",
    "ChainExhausted",
    "InvalidSize",
    "InvalidTarget",
    "EncodingError",
    "TooManyValues",
    "MalformedPlaintext",
    "ValueOutOfRange",
]
