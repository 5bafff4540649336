"""
Fábrica para geração de chaves CKKS em representação RNS.

KeyGen:
- Sample s ← HWT(h): chave secreta com peso de Hamming h
- Sample a ← R_{Q·P}, e ← DG(σ²): pk ← (b, a) com b = -a·s + e
- Para cada primo de dados q_j: a_j ← R_{Q·P}, e_j ← DG(σ²),
  b_j = -a_j·s + e_j + P·s'·[j], onde [j] vale 1 no limb j e 0 nos demais.
  Com s' = s² obtemos as chaves de relinearização; com s' = s(X^g), as
  chaves de Galois.

Todo o material é guardado na forma NTT sobre os primos de chave (dados +
primo especial P).
"""

import logging

import numpy as np

from .modulus import CKKSContext
from .keys import (
    GaloisKeys,
    PublicKey,
    RelinKeys,
    SecretKey,
    _KSwitchKey,
    galois_element,
)
from .rns import RNSPolynomial

logger = logging.getLogger(__name__)


class CKKSKeyFactory:
    """
    Fábrica para geração das chaves de um contexto CKKS.

    Distribuições utilizadas:
    - DG(σ²): Gaussiana Discreta com variância σ²
    - HWT(h): Vetores {0, ±1}^N com peso de Hamming h
    """

    def __init__(self, context: CKKSContext, rng: np.random.Generator = None):
        """
        Inicializa a fábrica de chaves.

        Args:
            context: Contexto CKKS
            rng: Gerador de números aleatórios (usa entropia do sistema se None)
        """
        self.context = context
        self.crypto_params = context.crypto_params
        self.rng = rng if rng is not None else np.random.default_rng()

    def _sample_error(self, moduli) -> RNSPolynomial:
        coeffs = self.crypto_params.generate_gaussian_coeffs(self.rng)
        return RNSPolynomial.from_integers(coeffs, moduli).to_ntt()

    def _sample_uniform(self, moduli) -> RNSPolynomial:
        # Uniforme no domínio NTT também é uniforme no anel
        return RNSPolynomial.random_uniform(
            self.rng, self.context.poly_modulus_degree, moduli, is_ntt=True
        )

    def _check_key(self, key):
        if key.context is not self.context:
            raise ValueError("Chave pertence a outro contexto")

    def generate_secret_key(self, hamming_weight: int = None) -> SecretKey:
        """
        Gera a chave secreta sk = (1, s) com s ← HWT(h).

        Args:
            hamming_weight: Peso de Hamming h (usa padrão se None)

        Returns:
            SecretKey: Chave secreta opaca
        """
        s_coeffs = self.crypto_params.generate_hamming_weight(
            self.rng, hamming_weight=hamming_weight
        )
        s = RNSPolynomial.from_integers(s_coeffs, self.context.key_moduli).to_ntt()
        logger.info("Chave secreta gerada")
        return SecretKey(self.context, s)

    def generate_public_key(self, secret_key: SecretKey) -> PublicKey:
        """
        Gera pk = (b, a) com b = -a·s + e (mod Q·P).
        """
        self._check_key(secret_key)
        moduli = self.context.key_moduli
        s = secret_key._data

        a = self._sample_uniform(moduli)
        e = self._sample_error(moduli)
        b = e - a * s

        logger.info("Chave pública gerada")
        return PublicKey(self.context, (b, a))

    def _generate_kswitch_key(self, secret_key: SecretKey, new_key: RNSPolynomial) -> _KSwitchKey:
        """
        Gera a chave de key switching de `new_key` (forma NTT) para s.

        Raises:
            ValueError: Se o contexto não tiver primo especial
        """
        if not self.context.using_keyswitching:
            raise ValueError("Key switching exige ao menos dois primos na cadeia")

        moduli = self.context.key_moduli
        special = self.context.special_prime
        s = secret_key._data

        components = []
        for j, q_j in enumerate(self.context.data_moduli):
            a = self._sample_uniform(moduli)
            e = self._sample_error(moduli)
            b = e - a * s

            # + P·s' apenas no limb j
            b.coeffs[j] = (b.coeffs[j] + (special % q_j) * new_key.coeffs[j]) % q_j
            components.append((b, a))

        return _KSwitchKey(components)

    def generate_relin_keys(self, secret_key: SecretKey) -> RelinKeys:
        """
        Gera as chaves de relinearização (key switching de s² para s).

        Returns:
            RelinKeys: Uma componente por primo de dados
        """
        self._check_key(secret_key)
        s = secret_key._data
        key = self._generate_kswitch_key(secret_key, s * s)
        logger.info("Chaves de relinearização geradas (%d componentes)", len(key))
        return RelinKeys(self.context, key)

    def generate_galois_keys(self, secret_key: SecretKey, steps=None) -> GaloisKeys:
        """
        Gera chaves de Galois para rotações.

        Args:
            secret_key: Chave secreta
            steps: Passos de rotação (padrão: ±1, ±2, ±4, ..., como o SEAL)

        Returns:
            GaloisKeys: Uma chave de key switching por elemento de Galois
        """
        self._check_key(secret_key)
        degree = self.context.poly_modulus_degree

        if steps is None:
            steps = []
            step = 1
            while step < degree // 2:
                steps.extend([step, -step])
                step *= 2

        s_coeff = secret_key._data.from_ntt()
        keys = {}
        for step in steps:
            elt = galois_element(step, degree)
            if elt in keys:
                continue
            rotated = s_coeff.apply_galois(elt).to_ntt()
            keys[elt] = self._generate_kswitch_key(secret_key, rotated)

        logger.info("Chaves de Galois geradas para %d elementos", len(keys))
        return GaloisKeys(self.context, keys)

    def generate_keypair(self, hamming_weight: int = None):
        """
        Gera um par (secret_key, public_key).
        """
        secret_key = self.generate_secret_key(hamming_weight)
        public_key = self.generate_public_key(secret_key)
        return secret_key, public_key

    def generate_full_keyset(self, hamming_weight: int = None, galois_steps=None) -> dict:
        """
        Gera um conjunto completo de chaves.

        Args:
            hamming_weight: Peso de Hamming para a chave secreta
            galois_steps: Passos de rotação; None não gera chaves de Galois

        Returns:
            Dict: 'secret_key', 'public_key', 'relin_keys' e, se pedido,
            'galois_keys'
        """
        secret_key, public_key = self.generate_keypair(hamming_weight)
        keyset = {
            "secret_key": secret_key,
            "public_key": public_key,
            "relin_keys": self.generate_relin_keys(secret_key),
        }
        if galois_steps is not None:
            keyset["galois_keys"] = self.generate_galois_keys(secret_key, galois_steps)
        return keyset


def create_key_factory(context: CKKSContext, rng: np.random.Generator = None) -> CKKSKeyFactory:
    """
    Cria uma nova instância da fábrica de chaves CKKS.
    """
    return CKKSKeyFactory(context, rng)
