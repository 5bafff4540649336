"""
Testes da cadeia de módulos e do contexto CKKS.
"""

import pytest
from sympy import isprime

from ckks.constants import CKKSCryptographicParameters
from ckks.modulus import ChainPosition, CKKSContext, generate_primes


class TestGeneratePrimes:
    """Testes da geração de primos NTT-friendly"""

    def test_primes_properties(self):
        degree = 1024
        primes = generate_primes(degree, [60, 40, 40, 60])

        assert len(primes) == 4
        assert len(set(primes)) == 4
        for q, bits in zip(primes, [60, 40, 40, 60]):
            assert isprime(q)
            assert q % (2 * degree) == 1
            assert q.bit_length() == bits

    def test_largest_primes_first(self):
        """Tamanhos repetidos recebem primos distintos, em ordem decrescente"""
        primes = generate_primes(1024, [40, 40])
        assert primes[0] > primes[1]
        assert primes[0] > (1 << 40) - 2 * 1024 * 5000

    def test_not_enough_primes(self):
        # Único candidato de 12 bits com q ≡ 1 (mod 2048) é 2049 = 3 · 683
        with pytest.raises(ValueError):
            generate_primes(1024, [12])


class TestCKKSContext:
    """Testes das posições da cadeia"""

    def setup_method(self):
        self.crypto_params = CKKSCryptographicParameters.fast_config()
        self.context = CKKSContext(self.crypto_params)

    def test_special_prime(self):
        assert self.context.using_keyswitching
        assert self.context.special_prime == self.context.coeff_modulus[-1]
        assert self.context.special_prime.bit_length() == 60
        assert len(self.context.data_moduli) == 3
        assert self.context.key_moduli == self.context.coeff_modulus

    def test_positions(self):
        """Posição 0 tem todos os primos de dados; cada passo descarta o último"""
        positions = self.context.positions
        assert len(positions) == 3
        assert self.context.first_position is positions[0]
        assert self.context.last_position is positions[-1]

        assert positions[0].moduli == self.context.data_moduli
        assert positions[1].moduli == self.context.data_moduli[:2]
        assert positions[2].moduli == self.context.data_moduli[:1]
        assert [p.level for p in positions] == [0, 1, 2]
        assert positions[0].bit_count == 140

    def test_next(self):
        first = self.context.first_position
        second = self.context.next(first)
        assert second == self.context.position(1)
        assert self.context.dropped_prime(first) == first.moduli[-1]
        assert self.context.next(self.context.last_position) is None

    def test_next_foreign_position(self):
        foreign = ChainPosition(0, (17, 97))
        assert not self.context.is_valid_position(foreign)
        with pytest.raises(ValueError):
            self.context.next(foreign)

    def test_position_out_of_range(self):
        with pytest.raises(ValueError):
            self.context.position(3)

    def test_modulus_product(self):
        first = self.context.first_position
        q0, q1, q2 = first.moduli
        assert self.context.modulus_product(first) == q0 * q1 * q2

    def test_same_parameters_same_chain(self):
        """Contextos com os mesmos parâmetros geram a mesma cadeia"""
        other = CKKSContext(CKKSCryptographicParameters.fast_config())
        assert other.coeff_modulus == self.context.coeff_modulus
        assert other.first_position == self.context.first_position

    def test_single_prime_chain(self):
        params = CKKSCryptographicParameters(poly_modulus_degree=1024, coeff_modulus_bits=(50,))
        context = CKKSContext(params)
        assert not context.using_keyswitching
        assert context.special_prime is None
        assert len(context.positions) == 1
        assert context.next(context.first_position) is None

    def test_print_parameters_summary(self, capsys):
        self.context.print_parameters_summary()
        out = capsys.readouterr().out
        assert "(especial)" in out
        assert "nível 2" in out
