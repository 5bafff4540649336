"""
Aritmética do anel R_Q = Z_Q[X]/(X^N + 1) em representação RNS.

Um polinômio é guardado como uma matriz (k, N) de inteiros Python (arrays
numpy de objetos), uma linha (limb) por primo da cadeia. Cada linha está
reduzida para [0, q_i). A multiplicação usa a NTT negacíclica de cada primo,
que existe porque todos os primos satisfazem q ≡ 1 (mod 2N).
"""

import math
from functools import lru_cache

import numpy as np

from .constants import CKKSCryptographicParameters


def _column(moduli):
    """Módulos como vetor coluna para broadcasting linha a linha."""
    return np.array(moduli, dtype=object).reshape(-1, 1)


def _powers(base: int, count: int, modulus: int) -> np.ndarray:
    powers = np.empty(count, dtype=object)
    value = 1
    for i in range(count):
        powers[i] = value
        value = value * base % modulus
    return powers


def _bit_reverse_indices(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    indices = np.arange(n, dtype=np.int64)
    reversed_indices = np.zeros(n, dtype=np.int64)
    for b in range(bits):
        reversed_indices |= ((indices >> b) & 1) << (bits - 1 - b)
    return reversed_indices


def find_primitive_root(order: int, modulus: int) -> int:
    """
    Encontra uma raiz primitiva de ordem `order` (potência de dois) módulo um primo.

    Para ordem potência de dois basta que root^(order/2) ≡ -1.

    Raises:
        ValueError: Se o módulo não for ≡ 1 (mod order)
    """
    if (modulus - 1) % order:
        raise ValueError(f"{modulus} não é congruente a 1 módulo {order}")

    exponent = (modulus - 1) // order
    for g in range(2, modulus):
        root = pow(g, exponent, modulus)
        if pow(root, order // 2, modulus) == modulus - 1:
            return root
    raise ValueError(f"Nenhuma raiz primitiva de ordem {order} módulo {modulus}")


class NTTTables:
    """
    Tabelas pré-computadas da NTT negacíclica para um primo q e grau N.

    A transformada direta avalia o polinômio em ψ^(2k+1), onde ψ é raiz
    primitiva 2N-ésima da unidade: torção por ψ^i seguida de uma NTT cíclica
    de Cooley-Tukey com ω = ψ².
    """

    def __init__(self, degree: int, modulus: int):
        self.degree = degree
        self.modulus = modulus

        psi = find_primitive_root(2 * degree, modulus)
        psi_inv = pow(psi, -1, modulus)
        n_inv = pow(degree, -1, modulus)

        self.psi_powers = _powers(psi, degree, modulus)
        # ψ^(-i) já multiplicado por N^(-1)
        self.inv_psi_powers = _powers(psi_inv, degree, modulus) * n_inv % modulus

        omega_powers = _powers(psi * psi % modulus, max(degree // 2, 1), modulus)
        omega_inv_powers = _powers(psi_inv * psi_inv % modulus, max(degree // 2, 1), modulus)

        self.stage_roots = []
        self.inv_stage_roots = []
        half = 1
        while half < degree:
            stride = degree // (2 * half)
            self.stage_roots.append(omega_powers[::stride][:half])
            self.inv_stage_roots.append(omega_inv_powers[::stride][:half])
            half *= 2

        self.bit_reverse = _bit_reverse_indices(degree)

    def _cyclic(self, values: np.ndarray, stage_roots) -> np.ndarray:
        q = self.modulus
        a = values[self.bit_reverse]
        half = 1
        for roots in stage_roots:
            blocks = a.reshape(-1, 2, half)
            u = blocks[:, 0, :]
            v = blocks[:, 1, :] * roots % q
            a = np.concatenate(((u + v) % q, (u - v) % q), axis=1).reshape(-1)
            half *= 2
        return a

    def forward(self, values: np.ndarray) -> np.ndarray:
        return self._cyclic(values * self.psi_powers % self.modulus, self.stage_roots)

    def inverse(self, values: np.ndarray) -> np.ndarray:
        return self._cyclic(values, self.inv_stage_roots) * self.inv_psi_powers % self.modulus


@lru_cache(maxsize=None)
def get_ntt_tables(degree: int, modulus: int) -> NTTTables:
    """Tabelas NTT compartilhadas (somente leitura) por (N, q)."""
    return NTTTables(degree, modulus)


@lru_cache(maxsize=None)
def _crt_constants(moduli: tuple):
    big_q = math.prod(moduli)
    terms = []
    for q in moduli:
        q_hat = big_q // q
        terms.append((q_hat, pow(q_hat, -1, q)))
    return big_q, terms


class RNSPolynomial:
    """
    Polinômio de R_Q guardado limb a limb.

    Attributes:
        coeffs: Matriz (k, N) de inteiros Python, linha i reduzida módulo moduli[i]
        moduli: Tupla com os k primos
        is_ntt: True se as linhas estão no domínio NTT
    """

    def __init__(self, coeffs, moduli, is_ntt: bool = False):
        self.moduli = tuple(int(q) for q in moduli)
        self.coeffs = np.asarray(coeffs, dtype=object)
        self.is_ntt = is_ntt

        if self.coeffs.ndim != 2 or self.coeffs.shape[0] != len(self.moduli):
            raise ValueError(
                f"Esperada matriz com {len(self.moduli)} linhas, "
                f"recebido shape {self.coeffs.shape}"
            )

    # === CONSTRUTORES ===
    @classmethod
    def from_integers(cls, values, moduli) -> "RNSPolynomial":
        """Reduz inteiros com sinal (coeficientes) módulo cada primo."""
        values = np.asarray(values, dtype=object)
        return cls(np.vstack([values % q for q in moduli]), moduli)

    @classmethod
    def zeros(cls, degree: int, moduli, is_ntt: bool = False) -> "RNSPolynomial":
        return cls(np.zeros((len(moduli), degree), dtype=object), moduli, is_ntt)

    @classmethod
    def random_uniform(cls, rng, degree: int, moduli, is_ntt: bool = False) -> "RNSPolynomial":
        """Amostra uniforme em R_Q (uniforme em cada limb)."""
        rows = [rng.integers(0, q, size=degree, dtype=np.int64).astype(object) for q in moduli]
        return cls(np.vstack(rows), moduli, is_ntt)

    # === PROPRIEDADES ===
    @property
    def degree(self) -> int:
        return self.coeffs.shape[1]

    def copy(self) -> "RNSPolynomial":
        return RNSPolynomial(self.coeffs.copy(), self.moduli, self.is_ntt)

    def _check_compatible(self, other: "RNSPolynomial"):
        if self.moduli != other.moduli:
            raise ValueError("Polinômios definidos sobre primos diferentes")
        if self.is_ntt != other.is_ntt:
            raise ValueError("Polinômios em representações diferentes (NTT/coeficientes)")
        if self.degree != other.degree:
            raise ValueError("Polinômios com graus diferentes")

    # === OPERAÇÕES DO ANEL ===
    def __add__(self, other: "RNSPolynomial") -> "RNSPolynomial":
        self._check_compatible(other)
        return RNSPolynomial((self.coeffs + other.coeffs) % _column(self.moduli), self.moduli, self.is_ntt)

    def __sub__(self, other: "RNSPolynomial") -> "RNSPolynomial":
        self._check_compatible(other)
        return RNSPolynomial((self.coeffs - other.coeffs) % _column(self.moduli), self.moduli, self.is_ntt)

    def __neg__(self) -> "RNSPolynomial":
        return RNSPolynomial((-self.coeffs) % _column(self.moduli), self.moduli, self.is_ntt)

    def __mul__(self, other) -> "RNSPolynomial":
        q = _column(self.moduli)
        if isinstance(other, RNSPolynomial):
            self._check_compatible(other)
            if not self.is_ntt:
                raise ValueError("Produto de polinômios exige a forma NTT")
            return RNSPolynomial(self.coeffs * other.coeffs % q, self.moduli, True)
        # escalar inteiro
        return RNSPolynomial(self.coeffs * (int(other) % q) % q, self.moduli, self.is_ntt)

    __rmul__ = __mul__

    def multiply(self, other: "RNSPolynomial") -> "RNSPolynomial":
        """Produto negacíclico de dois polinômios na forma de coeficientes."""
        return (self.to_ntt() * other.to_ntt()).from_ntt()

    # === MUDANÇAS DE REPRESENTAÇÃO ===
    def to_ntt(self) -> "RNSPolynomial":
        if self.is_ntt:
            return self.copy()
        rows = [get_ntt_tables(self.degree, q).forward(row) for row, q in zip(self.coeffs, self.moduli)]
        return RNSPolynomial(np.vstack(rows), self.moduli, True)

    def from_ntt(self) -> "RNSPolynomial":
        if not self.is_ntt:
            return self.copy()
        rows = [get_ntt_tables(self.degree, q).inverse(row) for row, q in zip(self.coeffs, self.moduli)]
        return RNSPolynomial(np.vstack(rows), self.moduli, False)

    # === MANIPULAÇÃO DE LIMBS ===
    def select(self, indices) -> "RNSPolynomial":
        """Subconjunto de limbs (na ordem dada)."""
        indices = list(indices)
        return RNSPolynomial(
            self.coeffs[indices].copy(), [self.moduli[i] for i in indices], self.is_ntt
        )

    def drop_last(self, count: int = 1) -> "RNSPolynomial":
        """Descarta os últimos limbs sem dividir (redução para um divisor de Q)."""
        if count < 0 or count >= len(self.moduli):
            raise ValueError(f"Não é possível descartar {count} de {len(self.moduli)} limbs")
        return self.select(range(len(self.moduli) - count))

    def divide_and_round_by_last(self) -> "RNSPolynomial":
        """
        Calcula ⌊c / q_last⌉ módulo os primos restantes.

        Com r = [c]_{q_last} centrado, c - r é divisível por q_last, então
        (c - r) · q_last^(-1) é o quociente arredondado em cada limb.
        """
        if self.is_ntt:
            raise ValueError("Divisão por primo exige a forma de coeficientes")
        if len(self.moduli) < 2:
            raise ValueError("É preciso ao menos dois limbs para descartar um primo")

        q_last = self.moduli[-1]
        remaining = self.moduli[:-1]
        last = self.coeffs[-1]
        centered = CKKSCryptographicParameters.mod_centered(last, q_last)

        q = _column(remaining)
        inverses = np.array([pow(q_last, -1, qi) for qi in remaining], dtype=object).reshape(-1, 1)
        result = (self.coeffs[:-1] - centered) % q * inverses % q
        return RNSPolynomial(result, remaining, False)

    def lift_row(self, index: int, moduli) -> "RNSPolynomial":
        """Interpreta o limb `index` como inteiros em [0, q_index) e reduz módulo `moduli`."""
        if self.is_ntt:
            raise ValueError("Decomposição RNS exige a forma de coeficientes")
        return RNSPolynomial.from_integers(self.coeffs[index], moduli)

    def apply_galois(self, galois_elt: int) -> "RNSPolynomial":
        """Automorfismo X -> X^g (g ímpar) na forma de coeficientes."""
        if self.is_ntt:
            raise ValueError("Automorfismo implementado apenas na forma de coeficientes")
        n = self.degree
        positions = (np.arange(n, dtype=np.int64) * galois_elt) % (2 * n)
        target = positions % n
        negate = positions >= n

        values = self.coeffs.copy()
        values[:, negate] = (-values[:, negate]) % _column(self.moduli)
        result = np.empty_like(values)
        result[:, target] = values
        return RNSPolynomial(result, self.moduli, False)

    # === RECONSTRUÇÃO ===
    def to_integers(self) -> np.ndarray:
        """
        Reconstrução CRT centrada: coeficientes em (-Q/2, Q/2] como inteiros Python.
        """
        if self.is_ntt:
            raise ValueError("Reconstrução CRT exige a forma de coeficientes")
        big_q, terms = _crt_constants(self.moduli)
        total = np.zeros(self.degree, dtype=object)
        for row, q, (q_hat, q_hat_inv) in zip(self.coeffs, self.moduli, terms):
            total = total + (row * q_hat_inv % q) * q_hat
        return CKKSCryptographicParameters.mod_centered(total, big_q)

    def __repr__(self):
        form = "ntt" if self.is_ntt else "coef"
        return f"RNSPolynomial(degree={self.degree}, limbs={len(self.moduli)}, form={form})"
