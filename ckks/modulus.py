"""
Cadeia de módulos e contexto CKKS.

O contexto gera os primos a partir dos tamanhos em bits, define as posições
da cadeia e é compartilhado (somente leitura) por codificador, cifrador,
decifrador, gerador de chaves e avaliador.

Posições: o nível 0 é o mais "fresco" (todos os primos de dados ativos) e o
último nível mantém apenas q0. Sair do nível ℓ descarta o último primo ativo.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from sympy import isprime

from .constants import CKKSCryptographicParameters
from .rns import get_ntt_tables

logger = logging.getLogger(__name__)


def generate_primes(degree: int, bit_sizes) -> list:
    """
    Gera primos q ≡ 1 (mod 2N) com os tamanhos pedidos.

    Para cada tamanho escolhe os maiores primos abaixo de 2^bits, todos
    distintos, na ordem em que os tamanhos aparecem.

    Args:
        degree: N (grau do anel)
        bit_sizes: tamanhos em bits, ex. [60, 40, 40, 60]

    Returns:
        list: Primos na mesma ordem de bit_sizes

    Raises:
        ValueError: Se não houver primos suficientes de algum tamanho
    """
    factor = 2 * degree
    next_candidate = {}
    primes = []

    for bits in bit_sizes:
        candidate = next_candidate.get(bits, ((1 << bits) - 2) // factor * factor + 1)
        lower_bound = 1 << (bits - 1)

        while candidate >= lower_bound and not isprime(candidate):
            candidate -= factor

        if candidate < lower_bound:
            raise ValueError(f"Primos insuficientes de {bits} bits para N={degree}")

        primes.append(candidate)
        next_candidate[bits] = candidate - factor

    return primes


@dataclass(frozen=True)
class ChainPosition:
    """
    Posição na cadeia de módulos (equivalente ao parms_id do SEAL).

    Attributes:
        level: 0 para a posição mais fresca
        moduli: Primos ativos nesta posição
    """

    level: int
    moduli: Tuple[int, ...]

    @property
    def bit_count(self) -> int:
        return sum(q.bit_length() for q in self.moduli)

    def __str__(self):
        return f"nível {self.level} ({len(self.moduli)} primos, {self.bit_count} bits)"


class CKKSContext:
    """
    Contexto CKKS: parâmetros validados, cadeia de primos e posições.

    Attributes:
        crypto_params: Parâmetros usados na construção
        coeff_modulus: Todos os primos, na ordem dos bits pedidos
        data_moduli: Primos usados pelos dados
        special_prime: Primo especial P para key switching (ou None)
        key_moduli: Primos das chaves (dados + especial)
    """

    def __init__(self, crypto_params: CKKSCryptographicParameters = None):
        if crypto_params is None:
            crypto_params = CKKSCryptographicParameters()
        crypto_params.validate_parameters()

        self.crypto_params = crypto_params
        self.poly_modulus_degree = crypto_params.POLYNOMIAL_DEGREE
        self.slot_count = crypto_params.SLOT_COUNT

        self.coeff_modulus = tuple(
            generate_primes(self.poly_modulus_degree, crypto_params.COEFF_MODULUS_BITS)
        )

        if crypto_params.has_special_prime:
            self.data_moduli = self.coeff_modulus[:-1]
            self.special_prime = self.coeff_modulus[-1]
        else:
            self.data_moduli = self.coeff_modulus
            self.special_prime = None
        self.key_moduli = self.coeff_modulus

        count = len(self.data_moduli)
        self._positions = tuple(
            ChainPosition(level, self.data_moduli[: count - level]) for level in range(count)
        )

        for q in self.coeff_modulus:
            get_ntt_tables(self.poly_modulus_degree, q)

        logger.info(
            "Contexto CKKS criado: N=%d, primos=%s, %d posições de dados",
            self.poly_modulus_degree,
            [q.bit_length() for q in self.coeff_modulus],
            count,
        )

    # === POSIÇÕES ===
    @property
    def positions(self) -> Tuple[ChainPosition, ...]:
        return self._positions

    @property
    def first_position(self) -> ChainPosition:
        return self._positions[0]

    @property
    def last_position(self) -> ChainPosition:
        return self._positions[-1]

    @property
    def using_keyswitching(self) -> bool:
        return self.special_prime is not None

    def position(self, level: int) -> ChainPosition:
        if level < 0 or level >= len(self._positions):
            raise ValueError(f"Nível deve estar entre 0 e {len(self._positions) - 1}")
        return self._positions[level]

    def is_valid_position(self, position) -> bool:
        """True se a posição pertence a esta cadeia."""
        return (
            isinstance(position, ChainPosition)
            and 0 <= position.level < len(self._positions)
            and self._positions[position.level] == position
        )

    def next(self, position: ChainPosition) -> Optional[ChainPosition]:
        """Próxima posição da cadeia, ou None na posição terminal."""
        if not self.is_valid_position(position):
            raise ValueError(f"Posição {position} não pertence a este contexto")
        if position.level + 1 >= len(self._positions):
            return None
        return self._positions[position.level + 1]

    def modulus_product(self, position: ChainPosition) -> int:
        """Q_ℓ: produto dos primos ativos."""
        return math.prod(position.moduli)

    def dropped_prime(self, position: ChainPosition) -> int:
        """Primo descartado ao sair da posição (último primo ativo)."""
        return position.moduli[-1]

    def print_parameters_summary(self):
        """Imprime os parâmetros efetivos (primos gerados incluídos)."""
        print("=== CONTEXTO CKKS ===")
        print(f"poly_modulus_degree: {self.poly_modulus_degree}")
        print(f"Slots: {self.slot_count}")
        print(
            f"coeff_modulus: {sum(q.bit_length() for q in self.coeff_modulus)} bits "
            f"({' + '.join(str(q.bit_length()) for q in self.coeff_modulus)})"
        )
        for q in self.coeff_modulus:
            tag = " (especial)" if q == self.special_prime else ""
            print(f"  - {q}{tag}")
        for position in self._positions:
            print(f"  Posição {position}")
        print("=" * 50)
