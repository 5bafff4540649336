"""
Cifrador e decifrador CKKS.

Encryption (chave pública): ct = (b·u + e1 + m, a·u + e2), u ← ZO(ρ), e1, e2 ← DG(σ²)
Encryption (simétrica):     ct = (-a·s + e + m, a),    a ← R_Q uniforme
Decryption:                 m ≈ c0 + c1·s + c2·s² + ...

A decifração nunca falha por excesso de ruído: o resultado apenas perde
precisão. Por isso o avaliador controla a escala e a posição na cadeia.
"""

import logging

import numpy as np

from .ckks import CKKSCiphertext, CKKSPlaintext
from .errors import MalformedPlaintext
from .keys import PublicKey, SecretKey
from .modulus import CKKSContext
from .rns import RNSPolynomial

logger = logging.getLogger(__name__)


def _check_key_context(key, context, kind):
    if not isinstance(key, kind):
        raise ValueError(f"Esperada {kind.__name__}, recebido {type(key).__name__}")
    if key.context is not context:
        raise ValueError(f"{kind.__name__} pertence a outro contexto")


class CKKSEncryptor:
    """
    Converte plaintexts em ciphertexts usando a chave pública (ou a secreta).
    """

    def __init__(
        self,
        context: CKKSContext,
        public_key: PublicKey = None,
        secret_key: SecretKey = None,
        rng: np.random.Generator = None,
    ):
        if public_key is None and secret_key is None:
            raise ValueError("É preciso uma chave pública ou secreta")
        if public_key is not None:
            _check_key_context(public_key, context, PublicKey)
        if secret_key is not None:
            _check_key_context(secret_key, context, SecretKey)

        self.context = context
        self.crypto_params = context.crypto_params
        self._public_key = public_key
        self._secret_key = secret_key
        self.rng = rng if rng is not None else np.random.default_rng()

    def _check_plaintext(self, plaintext: CKKSPlaintext):
        if not isinstance(plaintext, CKKSPlaintext) or plaintext.context is not self.context:
            raise MalformedPlaintext("Plaintext de outro contexto ou tipo inválido")
        if not plaintext.is_well_formed():
            raise MalformedPlaintext("Plaintext malformado não pode ser cifrado")

    def _sample_error(self, moduli) -> RNSPolynomial:
        return RNSPolynomial.from_integers(
            self.crypto_params.generate_gaussian_coeffs(self.rng), moduli
        )

    def encrypt(self, plaintext: CKKSPlaintext) -> CKKSCiphertext:
        """
        Cifra com a chave pública, na posição e escala do plaintext.

        Returns:
            CKKSCiphertext: Ciphertext linear (2 componentes)
        """
        if self._public_key is None:
            raise ValueError("Cifrador criado sem chave pública")
        self._check_plaintext(plaintext)

        position = plaintext.position
        moduli = position.moduli
        active = range(len(moduli))
        pk_b, pk_a = (part.select(active) for part in self._public_key._data)

        u = RNSPolynomial.from_integers(
            self.crypto_params.generate_zero_one_coeffs(self.rng), moduli
        ).to_ntt()

        c0 = (pk_b * u).from_ntt() + self._sample_error(moduli) + plaintext.data
        c1 = (pk_a * u).from_ntt() + self._sample_error(moduli)

        logger.debug("Plaintext cifrado em %s", position)
        return CKKSCiphertext([c0, c1], position, plaintext.scale, self.context)

    def encrypt_symmetric(self, plaintext: CKKSPlaintext) -> CKKSCiphertext:
        """
        Cifra com a chave secreta: ct = (-a·s + e + m, a).
        """
        if self._secret_key is None:
            raise ValueError("Cifrador criado sem chave secreta")
        self._check_plaintext(plaintext)

        position = plaintext.position
        moduli = position.moduli
        s = self._secret_key._data.select(range(len(moduli)))

        a = RNSPolynomial.random_uniform(
            self.rng, self.context.poly_modulus_degree, moduli, is_ntt=True
        )
        c0 = self._sample_error(moduli) + plaintext.data - (a * s).from_ntt()
        c1 = a.from_ntt()

        return CKKSCiphertext([c0, c1], position, plaintext.scale, self.context)


class CKKSDecryptor:
    """
    Converte ciphertexts de qualquer tamanho em plaintexts usando a chave secreta.
    """

    def __init__(self, context: CKKSContext, secret_key: SecretKey):
        _check_key_context(secret_key, context, SecretKey)
        self.context = context
        self._secret_key = secret_key

    def decrypt(self, ciphertext: CKKSCiphertext) -> CKKSPlaintext:
        """
        Calcula c0 + c1·s + c2·s² + ... módulo os primos ativos.

        Returns:
            CKKSPlaintext: Plaintext na posição e escala do ciphertext
        """
        if not isinstance(ciphertext, CKKSCiphertext) or ciphertext.context is not self.context:
            raise ValueError("Ciphertext de outro contexto ou tipo inválido")

        moduli = ciphertext.position.moduli
        s = self._secret_key._data.select(range(len(moduli)))

        s_power = s
        accumulated = None
        for comp in ciphertext.components[1:]:
            term = comp.to_ntt() * s_power
            accumulated = term if accumulated is None else accumulated + term
            s_power = s_power * s

        message = ciphertext.get_component(0)
        if accumulated is not None:
            message = message + accumulated.from_ntt()

        return CKKSPlaintext(message, ciphertext.position, ciphertext.scale, self.context)
