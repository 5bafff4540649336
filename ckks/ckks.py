"""
Classes para representar ciphertexts e plaintexts do esquema CKKS.

Cada valor carrega seus dados RNS, a posição na cadeia de módulos e a escala
exata. As operações homomórficas ficam no avaliador (evaluator.py); aqui
ficam apenas o modelo de dados e as verificações de compatibilidade.
"""

import math
from typing import List

from .modulus import ChainPosition, CKKSContext
from .rns import RNSPolynomial


class CKKSPlaintext:
    """
    Plaintext CKKS: polinômio codificado, escala e posição na cadeia.

    O construtor não valida a forma dos dados; o codificador e o avaliador
    rejeitam plaintexts malformados no momento do uso.

    Attributes:
        data: Polinômio RNS na forma de coeficientes
        position: Posição da cadeia sobre a qual o polinômio está definido
        scale: Fator de escala usado na codificação
        context: Contexto dono da cadeia
    """

    def __init__(
        self,
        data: RNSPolynomial,
        position: ChainPosition,
        scale: float,
        context: CKKSContext,
    ):
        if not scale > 0:
            raise ValueError(f"Escala deve ser positiva, recebido: {scale}")

        self.data = data
        self.position = position
        self.scale = float(scale)
        self.context = context

    @property
    def level(self) -> int:
        return self.position.level

    def is_well_formed(self) -> bool:
        """Limbs e coeficientes coerentes com a posição e o contexto."""
        return (
            isinstance(self.data, RNSPolynomial)
            and not self.data.is_ntt
            and self.context.is_valid_position(self.position)
            and self.data.moduli == self.position.moduli
            and self.data.degree == self.context.poly_modulus_degree
        )

    def copy(self) -> "CKKSPlaintext":
        return CKKSPlaintext(self.data.copy(), self.position, self.scale, self.context)

    def __repr__(self):
        return f"CKKSPlaintext(level={self.level}, scale=2^{math.log2(self.scale):.2f})"


class CKKSCiphertext:
    """
    Classe que representa um ciphertext do esquema CKKS.

    Attributes:
        components: Lista de polinômios RNS (2 quando linear, 3 após multiplicação)
        position: Posição atual na cadeia de módulos
        scale: Fator de escala exato
        context: Contexto CKKS
    """

    def __init__(
        self,
        components: List[RNSPolynomial],
        position: ChainPosition,
        scale: float,
        context: CKKSContext,
    ):
        """
        Inicializa um novo ciphertext CKKS.

        Args:
            components: Lista de polinômios que formam o ciphertext
            position: Posição na cadeia (os componentes devem usar os mesmos primos)
            scale: Fator de escala para decodificação
            context: Contexto dono da cadeia

        Raises:
            ValueError: Se os parâmetros estiverem inválidos
        """
        self.context = context
        self._validate_initialization_params(components, position, scale)

        self.components = list(components)
        self.position = position
        self.scale = float(scale)

    def _validate_initialization_params(self, components, position, scale):
        """Valida os parâmetros de inicialização."""
        if not components:
            raise ValueError("Lista de componentes não pode estar vazia")

        if not all(isinstance(comp, RNSPolynomial) for comp in components):
            raise ValueError("Todos os componentes devem ser instâncias de RNSPolynomial")

        if not self.context.is_valid_position(position):
            raise ValueError(f"Posição {position} não pertence ao contexto")

        for comp in components:
            if comp.is_ntt or comp.moduli != position.moduli:
                raise ValueError("Componentes devem estar na forma de coeficientes e na posição dada")
            if comp.degree != self.context.poly_modulus_degree:
                raise ValueError("Componentes com grau diferente do contexto")

        if not scale > 0:
            raise ValueError(f"Escala deve ser positiva, recebido: {scale}")

    @property
    def level(self) -> int:
        return self.position.level

    @property
    def current_modulus(self) -> int:
        """Retorna Q_ℓ, o produto dos primos ativos."""
        return self.context.modulus_product(self.position)

    @property
    def size(self) -> int:
        """Retorna o número de componentes do ciphertext."""
        return len(self.components)

    @property
    def remaining_levels(self) -> int:
        """Quantos rescales ainda são possíveis."""
        return len(self.context.positions) - 1 - self.level

    def is_linear(self) -> bool:
        return self.size == 2

    def is_fresh(self) -> bool:
        """
        Um ciphertext é "fresh" se é linear, está na primeira posição e tem a
        escala padrão dos parâmetros.
        """
        return (
            self.is_linear()
            and self.position == self.context.first_position
            and math.isclose(self.scale, self.context.crypto_params.SCALING_FACTOR)
        )

    def can_add_with(self, other: "CKKSCiphertext", rel_tol: float = None) -> bool:
        """Mesma posição, mesma escala (dentro da tolerância) e mesmo tamanho."""
        if rel_tol is None:
            rel_tol = self.context.crypto_params.SCALE_TOLERANCE
        return (
            self.context is other.context
            and self.position == other.position
            and math.isclose(self.scale, other.scale, rel_tol=rel_tol)
            and self.size == other.size
        )

    def can_multiply_with(self, other: "CKKSCiphertext") -> bool:
        """Mesma posição e ainda há primo para o rescale do produto."""
        return (
            self.context is other.context
            and self.position == other.position
            and self.context.next(self.position) is not None
        )

    def copy(self) -> "CKKSCiphertext":
        """Cria uma cópia profunda do ciphertext."""
        return CKKSCiphertext(
            components=[comp.copy() for comp in self.components],
            position=self.position,
            scale=self.scale,
            context=self.context,
        )

    def get_component(self, index: int) -> RNSPolynomial:
        """
        Retorna um componente específico do ciphertext.

        Raises:
            IndexError: Se o índice estiver fora do alcance
        """
        if index < 0 or index >= len(self.components):
            raise IndexError(
                f"Índice {index} fora do alcance. Ciphertext tem {len(self.components)} componentes."
            )
        return self.components[index]

    def print_summary(self):
        """Imprime um resumo detalhado do ciphertext."""
        print("=== RESUMO DO CIPHERTEXT CKKS ===")
        print(f"Número de componentes: {self.size}")
        print(f"Posição: {self.position} (de {len(self.context.positions) - 1})")
        print(f"Módulo atual: ~{self.current_modulus.bit_length()} bits")
        print(f"Escala: 2^{math.log2(self.scale):.6f} ({self.scale:.6e})")
        print(f"Níveis restantes: {self.remaining_levels}")
        print(f"Status: {'Fresh' if self.is_fresh() else 'Processado'}")

        for i, comp in enumerate(self.components):
            print(f"Componente {i}: {comp.degree} coeficientes x {len(comp.moduli)} limbs")
        print("=" * 35)

    def __repr__(self):
        return (
            f"CKKSCiphertext(size={self.size}, level={self.level}, "
            f"scale=2^{math.log2(self.scale):.2f})"
        )
