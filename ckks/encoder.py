"""
Codificador CKKS: canonical embedding entre vetores de slots e polinômios.

O slot j corresponde à raiz ζ^(5^j), com ζ = e^(iπ/N) raiz primitiva
2N-ésima da unidade; o slot conjugado usa ζ^(-5^j). Assim um polinômio com
coeficientes reais representa N/2 valores complexos e as rotações de slots
são automorfismos X -> X^(5^k).

As avaliações em todas as raízes ímpares ζ^(2t+1) saem de uma única FFT de
tamanho N sobre os coeficientes "torcidos" por ζ^c.
"""

import logging

import numpy as np
from scipy.fft import fft, ifft

from .ckks import CKKSPlaintext
from .errors import EncodingError, MalformedPlaintext, TooManyValues, ValueOutOfRange
from .modulus import ChainPosition, CKKSContext
from .rns import RNSPolynomial

logger = logging.getLogger(__name__)


class CKKSEncoder:
    """
    Codifica vetores de reais (ou complexos) em plaintexts e decodifica de volta.

    Attributes:
        context: Contexto CKKS
        slot_count: N/2
    """

    def __init__(self, context: CKKSContext):
        self.context = context
        N = context.poly_modulus_degree
        self.slot_count = N // 2
        M = 2 * N

        # Grupo de rotação: 5^j mod 2N
        rotation_group = np.array([pow(5, j, M) for j in range(self.slot_count)], dtype=np.int64)
        # Índice t da raiz ζ^(2t+1) na saída da FFT
        self._slot_index = (rotation_group - 1) // 2
        self._conjugate_index = (M - rotation_group - 1) // 2

        exponents = np.arange(N)
        self._twist = np.exp(1j * np.pi * exponents / N)
        self._untwist = np.conjugate(self._twist)

    def sigma(self, coeffs: np.ndarray) -> np.ndarray:
        """
        Aplica o canonical embedding σ: R → ℂ^(N/2).

        Args:
            coeffs: N coeficientes reais

        Returns:
            np.ndarray: Valores nos N/2 slots
        """
        N = self.context.poly_modulus_degree
        evaluations = N * ifft(coeffs * self._twist)
        return evaluations[self._slot_index]

    def sigma_inverse(self, z: np.ndarray) -> np.ndarray:
        """
        Inverso do canonical embedding: ℂ^(N/2) → coeficientes reais.

        Expande z com a simetria hermitiana (slot conjugado recebe conj(z)),
        o que garante coeficientes reais.
        """
        N = self.context.poly_modulus_degree
        evaluations = np.zeros(N, dtype=np.complex128)
        evaluations[self._slot_index] = z
        evaluations[self._conjugate_index] = np.conjugate(z)
        coeffs = fft(evaluations) / N * self._untwist
        return np.real(coeffs)

    def encode(self, values, scale: float = None, position: ChainPosition = None) -> CKKSPlaintext:
        """
        Codifica valores em um plaintext na escala e posição pedidas.

        Args:
            values: Sequência de até N/2 reais/complexos, ou um único número
                (replicado em todos os slots)
            scale: Fator de escala Δ (usa o padrão dos parâmetros se None)
            position: Posição da cadeia (usa a primeira se None)

        Returns:
            CKKSPlaintext: Plaintext codificado

        Raises:
            TooManyValues: Se houver mais valores que slots
            ValueOutOfRange: Se os coeficientes não couberem no módulo ativo
            EncodingError: Para valores não finitos, escala ou posição inválidas
        """
        if scale is None:
            scale = self.context.crypto_params.SCALING_FACTOR
        if position is None:
            position = self.context.first_position

        if not np.isfinite(scale) or scale <= 0:
            raise EncodingError(f"Escala deve ser positiva e finita, recebido: {scale}")
        if not self.context.is_valid_position(position):
            raise EncodingError(f"Posição {position} não pertence ao contexto")

        if np.ndim(values) == 0:
            z = np.full(self.slot_count, values, dtype=np.complex128)
        else:
            z = np.asarray(values, dtype=np.complex128)
            if z.ndim != 1:
                raise EncodingError("Valores devem formar um vetor unidimensional")
            if len(z) > self.slot_count:
                raise TooManyValues(
                    f"{len(z)} valores não cabem em {self.slot_count} slots"
                )
            z = np.pad(z, (0, self.slot_count - len(z)), mode="constant")

        if not np.all(np.isfinite(z)):
            raise EncodingError("Valores não finitos não podem ser codificados")

        coeffs = np.rint(self.sigma_inverse(z) * scale)

        max_coeff = float(np.max(np.abs(coeffs)))
        if not np.isfinite(max_coeff) or max_coeff >= self.context.modulus_product(position) / 2:
            raise ValueOutOfRange(
                f"Valores codificados grandes demais para {position} (escala {scale:.3e})"
            )

        integers = np.array([int(c) for c in coeffs], dtype=object)
        data = RNSPolynomial.from_integers(integers, position.moduli)

        logger.debug("Codificados %d slots em %s, escala %.6e", len(z), position, scale)
        return CKKSPlaintext(data, position, scale, self.context)

    def decode(self, plaintext: CKKSPlaintext, return_complex: bool = False) -> np.ndarray:
        """
        Decodifica um plaintext em N/2 valores aproximados.

        Args:
            plaintext: Plaintext (por exemplo, resultado do decifrador)
            return_complex: Se True, retorna os valores complexos dos slots

        Returns:
            np.ndarray: Valores dos slots (parte real por padrão)

        Raises:
            MalformedPlaintext: Se o plaintext não tiver a forma esperada
        """
        if not isinstance(plaintext, CKKSPlaintext) or plaintext.context is not self.context:
            raise MalformedPlaintext("Plaintext de outro contexto ou tipo inválido")
        if not plaintext.is_well_formed():
            raise MalformedPlaintext(
                f"Plaintext malformado: esperados limbs da posição {plaintext.position} "
                f"com {self.context.poly_modulus_degree} coeficientes"
            )

        # Centered lift via CRT e remoção da escala
        integers = plaintext.data.to_integers()
        coeffs = integers.astype(np.float64) / plaintext.scale

        z = self.sigma(coeffs)
        if return_complex:
            return z
        return np.real(z)
