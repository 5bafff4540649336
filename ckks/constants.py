"""
Parâmetros centralizados para o motor CKKS nivelado.

Esta classe organiza todos os parâmetros criptográficos de forma semântica
e é o único objeto de configuração do sistema: é construída explicitamente
e passada por referência (somente leitura) para o contexto e os demais
componentes.

Configurações recomendadas (mesmas do exemplo "CKKS basics" do SEAL):
- Básico: N=8192, cadeia [60, 40, 40, 60], Δ=2^40
- Profundo: N=16384, cadeia [60, 40, 40, 40, 40, 60], Δ=2^40
- Rápido (somente testes, inseguro): N=1024, cadeia [60, 40, 40, 60]

Convenções:
- N = poly_modulus_degree (potência de dois)
- slots = N/2
- O último primo da cadeia (quando há mais de um) é o primo especial P,
  reservado para key switching.
"""

import math

import numpy as np

MAX_PRIME_BITS = 60


class CKKSCryptographicParameters:
    """
    Classe que centraliza todos os parâmetros do esquema CKKS.

    Separa:
    - Parâmetros estruturais (grau do anel, cadeia de módulos)
    - Parâmetros de precisão (escala, tolerâncias)
    - Configurações de ruído e distribuições de chave
    """

    def __init__(
        self,
        poly_modulus_degree: int = 8192,  # N - grau do polinômio
        coeff_modulus_bits=(60, 40, 40, 60),  # tamanhos em bits dos primos
        scale: float = 2.0**40,  # Δ - fator de escala padrão
        gaussian_noise_stddev: float = 3.2,  # σ - desvio padrão gaussiano
        hamming_weight: int = 64,  # h - peso de Hamming da chave secreta
        zero_one_density: float = 0.5,  # ρ - densidade ZO
        scale_tolerance: float = 1e-9,  # tolerância relativa para somas
        scale_alignment_tolerance: float = 1e-4,  # tolerância de align_scale
    ):
        """
        Inicializa e valida os parâmetros.

        Args:
            poly_modulus_degree: grau N do anel Z[X]/(X^N + 1)
            coeff_modulus_bits: bits de cada primo da cadeia, na ordem
            scale: escala padrão usada pelo codificador
            gaussian_noise_stddev: σ para DG(σ²)
            hamming_weight: h para HWT(h)
            zero_one_density: ρ para ZO(ρ)
            scale_tolerance: diferença relativa máxima entre escalas somadas
            scale_alignment_tolerance: diferença relativa máxima aceita por
                align_scale

        Raises:
            ValueError: Se algum parâmetro for inválido
        """
        # === PARÂMETROS ESTRUTURAIS ===
        self.POLYNOMIAL_DEGREE = int(poly_modulus_degree)
        self.logN = self.POLYNOMIAL_DEGREE.bit_length() - 1
        self.SLOT_COUNT = self.POLYNOMIAL_DEGREE >> 1
        self.COEFF_MODULUS_BITS = tuple(int(b) for b in coeff_modulus_bits)

        # === PARÂMETROS DE ESCALA ===
        self.SCALING_FACTOR = float(scale)
        self.SCALE_TOLERANCE = float(scale_tolerance)
        self.SCALE_ALIGNMENT_TOLERANCE = float(scale_alignment_tolerance)

        # === PARÂMETROS DE RUÍDO ===
        self.GAUSSIAN_NOISE_STDDEV = gaussian_noise_stddev
        self.HAMMING_WEIGHT = hamming_weight
        self.ZERO_ONE_DENSITY = zero_one_density

        self.validate_parameters()

    def validate_parameters(self):
        """
        Verifica a consistência dos parâmetros.

        Raises:
            ValueError: Se algum parâmetro estiver fora do domínio válido
        """
        N = self.POLYNOMIAL_DEGREE
        if N < 2 or N & (N - 1):
            raise ValueError(f"poly_modulus_degree deve ser potência de 2, recebido: {N}")

        if not self.COEFF_MODULUS_BITS:
            raise ValueError("A cadeia de módulos precisa de pelo menos um primo")

        for bits in self.COEFF_MODULUS_BITS:
            # Primos q ≡ 1 (mod 2N) exigem q > 2N
            if bits > MAX_PRIME_BITS or bits <= self.logN + 1:
                raise ValueError(
                    f"Tamanho de primo inválido: {bits} bits "
                    f"(deve estar entre {self.logN + 2} e {MAX_PRIME_BITS})"
                )

        if not math.isfinite(self.SCALING_FACTOR) or self.SCALING_FACTOR <= 0:
            raise ValueError(f"Escala deve ser positiva, recebido: {self.SCALING_FACTOR}")

        if self.SCALE_TOLERANCE < 0 or self.SCALE_ALIGNMENT_TOLERANCE < 0:
            raise ValueError("Tolerâncias de escala não podem ser negativas")

        if self.GAUSSIAN_NOISE_STDDEV < 0:
            raise ValueError("Desvio padrão do ruído não pode ser negativo")

        if not 0 < self.HAMMING_WEIGHT <= N:
            raise ValueError(
                f"Peso de Hamming {self.HAMMING_WEIGHT} deve estar entre 1 e o grau {N}"
            )

        if not 0 <= self.ZERO_ONE_DENSITY <= 1:
            raise ValueError(
                f"Densidade deve estar entre 0 e 1, recebido: {self.ZERO_ONE_DENSITY}"
            )

    # === ESTRUTURA DA CADEIA ===
    @property
    def has_special_prime(self) -> bool:
        """Há primo especial (e portanto key switching) quando a cadeia tem 2+ primos."""
        return len(self.COEFF_MODULUS_BITS) > 1

    @property
    def data_level_count(self) -> int:
        """Número de posições de dados na cadeia."""
        if self.has_special_prime:
            return len(self.COEFF_MODULUS_BITS) - 1
        return 1

    @classmethod
    def basic_config(cls):
        """
        Configuração do exemplo "CKKS basics": N=8192, [60, 40, 40, 60], Δ=2^40.

        Returns:
            CKKSCryptographicParameters: Parâmetros com dois níveis de multiplicação
        """
        return cls(poly_modulus_degree=8192, coeff_modulus_bits=(60, 40, 40, 60))

    @classmethod
    def deep_config(cls):
        """
        Configuração com quatro níveis de multiplicação.

        Returns:
            CKKSCryptographicParameters: N=16384, [60, 40, 40, 40, 40, 60]
        """
        return cls(
            poly_modulus_degree=16384, coeff_modulus_bits=(60, 40, 40, 40, 40, 60)
        )

    @classmethod
    def fast_config(cls):
        """
        Configuração pequena para testes e depuração. NÃO é segura.

        Returns:
            CKKSCryptographicParameters: N=1024, [60, 40, 40, 60]
        """
        return cls(poly_modulus_degree=1024, coeff_modulus_bits=(60, 40, 40, 60))

    def print_parameters_summary(self):
        """
        Imprime um resumo dos parâmetros configurados.
        """
        print("=== PARÂMETROS CKKS ===")
        print(f"poly_modulus_degree: N = 2^{self.logN} = {self.POLYNOMIAL_DEGREE}")
        print(f"Slots disponíveis: {self.SLOT_COUNT}")
        print(
            f"Cadeia de módulos: {list(self.COEFF_MODULUS_BITS)} bits "
            f"(total {sum(self.COEFF_MODULUS_BITS)} bits)"
        )
        print(f"Níveis de dados: {self.data_level_count}")
        print(f"Escala padrão: 2^{math.log2(self.SCALING_FACTOR):.2f}")
        print(f"Desvio padrão do ruído (σ): {self.GAUSSIAN_NOISE_STDDEV}")
        print(f"Peso de Hamming (h): {self.HAMMING_WEIGHT}")
        print(f"Densidade ZO (ρ): {self.ZERO_ONE_DENSITY}")
        print("=" * 50)

    # === FUNÇÕES AUXILIARES ===
    @staticmethod
    def mod_centered(value, modulus):
        """
        Reduz para o intervalo centrado ℤ_a = (-a/2, a/2].

        Funciona com escalares e com arrays (inclusive arrays de objetos com
        inteiros Python arbitrariamente grandes).
        """
        reduced = np.mod(value, modulus)
        half_modulus = modulus // 2

        if np.isscalar(reduced):
            if reduced > half_modulus:
                return reduced - modulus
            return reduced

        result = reduced.copy()
        mask = result > half_modulus
        result[mask] = result[mask] - modulus
        return result

    # === DISTRIBUIÇÕES (coeficientes inteiros com sinal) ===
    def generate_gaussian_coeffs(self, rng, degree_n=None, sigma_val=None):
        """
        Amostra N coeficientes de DG(σ²) arredondados para inteiros.

        Args:
            rng: Gerador numpy (np.random.Generator)
            degree_n: Quantidade de coeficientes (usa POLYNOMIAL_DEGREE se None)
            sigma_val: Desvio padrão (usa GAUSSIAN_NOISE_STDDEV se None)

        Returns:
            ndarray: Coeficientes int64
        """
        if degree_n is None:
            degree_n = self.POLYNOMIAL_DEGREE
        if sigma_val is None:
            sigma_val = self.GAUSSIAN_NOISE_STDDEV

        return np.rint(rng.normal(0, sigma_val, size=degree_n)).astype(np.int64)

    def generate_hamming_weight(self, rng, n=None, hamming_weight=None):
        """
        Amostra um vetor de HWT(h): exatamente h coeficientes em {-1, +1}.

        Args:
            rng: Gerador numpy
            n: Dimensão do vetor (usa POLYNOMIAL_DEGREE se None)
            hamming_weight: Peso de Hamming h (usa HAMMING_WEIGHT se None)

        Returns:
            ndarray: Vetor em {0, ±1}^N com peso de Hamming h
        """
        if n is None:
            n = self.POLYNOMIAL_DEGREE
        if hamming_weight is None:
            hamming_weight = self.HAMMING_WEIGHT

        if hamming_weight > n:
            raise ValueError(
                f"Peso de Hamming {hamming_weight} não pode ser maior que o grau {n}"
            )

        coeffs = np.zeros(n, dtype=np.int64)
        positions = rng.choice(n, size=hamming_weight, replace=False)
        coeffs[positions] = rng.choice([-1, 1], size=hamming_weight)
        return coeffs

    def generate_zero_one_coeffs(self, rng, degree_n=None, density=None):
        """
        Amostra um vetor de ZO(ρ).

        Cada coeficiente é ±1 com probabilidade ρ/2 cada e 0 com
        probabilidade 1-ρ.
        """
        if degree_n is None:
            degree_n = self.POLYNOMIAL_DEGREE
        if density is None:
            density = self.ZERO_ONE_DENSITY

        rand_val = rng.random(degree_n)
        coeffs = np.zeros(degree_n, dtype=np.int64)
        coeffs[rand_val < density / 2] = -1
        coeffs[(rand_val >= density / 2) & (rand_val < density)] = 1
        return coeffs
