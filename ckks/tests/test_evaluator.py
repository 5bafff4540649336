"""
Testes do avaliador CKKS: operações homomórficas, controle de escala e de nível.
"""

import math

import numpy as np
import pytest

from ckks.constants import CKKSCryptographicParameters
from ckks.encoder import CKKSEncoder
from ckks.encryptor import CKKSDecryptor, CKKSEncryptor
from ckks.errors import (
    ChainExhausted,
    EvaluatorError,
    InvalidSize,
    InvalidTarget,
    ModulusMismatch,
    ScaleMismatch,
    ScaleOutOfBounds,
)
from ckks.evaluator import CKKSEvaluator
from ckks.key_factory import CKKSKeyFactory
from ckks.modulus import ChainPosition, CKKSContext


class EvaluatorTestBase:
    """Contexto pequeno (N=1024, [60, 40, 40, 60]) compartilhado pelos testes"""

    def setup_method(self):
        self.crypto_params = CKKSCryptographicParameters.fast_config()
        self.context = CKKSContext(self.crypto_params)
        self.rng = np.random.default_rng(99)

        self.key_factory = CKKSKeyFactory(self.context, self.rng)
        self.keyset = self.key_factory.generate_full_keyset()

        self.encoder = CKKSEncoder(self.context)
        self.encryptor = CKKSEncryptor(self.context, self.keyset["public_key"], rng=self.rng)
        self.decryptor = CKKSDecryptor(self.context, self.keyset["secret_key"])
        self.evaluator = CKKSEvaluator(self.context)

        self.x = self.rng.uniform(-1, 1, size=self.encoder.slot_count)
        self.y = self.rng.uniform(-1, 1, size=self.encoder.slot_count)

    def encrypt(self, values, scale=2**40, position=None):
        return self.encryptor.encrypt(self.encoder.encode(values, scale, position))

    def decode(self, ciphertext):
        return self.encoder.decode(self.decryptor.decrypt(ciphertext))


class TestAddition(EvaluatorTestBase):
    """Testes de adição e subtração"""

    def test_add(self):
        ct = self.evaluator.add(self.encrypt(self.x), self.encrypt(self.y))
        assert ct.size == 2
        assert ct.scale == 2**40
        np.testing.assert_allclose(self.decode(ct), self.x + self.y, atol=1e-3)

    def test_add_does_not_modify_inputs(self):
        a = self.encrypt(self.x)
        b = self.encrypt(self.y)
        before = a.components[0].coeffs.copy()
        self.evaluator.add(a, b)
        np.testing.assert_array_equal(a.components[0].coeffs, before)

    def test_sub_and_negate(self):
        a = self.encrypt(self.x)
        b = self.encrypt(self.y)
        np.testing.assert_allclose(
            self.decode(self.evaluator.sub(a, b)), self.x - self.y, atol=1e-3
        )
        np.testing.assert_allclose(self.decode(self.evaluator.negate(a)), -self.x, atol=1e-3)

    def test_add_many(self):
        cts = [self.encrypt(self.x) for _ in range(3)]
        np.testing.assert_allclose(
            self.decode(self.evaluator.add_many(cts)), 3 * self.x, atol=1e-3
        )
        with pytest.raises(ValueError):
            self.evaluator.add_many([])

    def test_add_plain_and_sub_plain(self):
        ct = self.encrypt(self.x)
        plain = self.encoder.encode(self.y, 2**40)
        np.testing.assert_allclose(
            self.decode(self.evaluator.add_plain(ct, plain)), self.x + self.y, atol=1e-3
        )
        np.testing.assert_allclose(
            self.decode(self.evaluator.sub_plain(ct, plain)), self.x - self.y, atol=1e-3
        )

    @pytest.mark.parametrize(
        "level_a, level_b", [(0, 1), (0, 2), (1, 2), (1, 0), (2, 0), (2, 1)]
    )
    def test_add_different_positions(self, level_a, level_b):
        """Soma em posições diferentes gera ModulusMismatch"""
        a = self.encrypt(self.x, 2**30, self.context.position(level_a))
        b = self.encrypt(self.y, 2**30, self.context.position(level_b))
        with pytest.raises(ModulusMismatch):
            self.evaluator.add(a, b)
        with pytest.raises(ModulusMismatch):
            self.evaluator.sub(a, b)

    def test_add_different_scales(self):
        a = self.encrypt(self.x, 2**40)
        b = self.encrypt(self.y, 2**39)
        with pytest.raises(ScaleMismatch):
            self.evaluator.add(a, b)
        with pytest.raises(ScaleMismatch):
            self.evaluator.add_plain(a, self.encoder.encode(self.y, 2**39))

    def test_add_different_sizes(self):
        a = self.encrypt(self.x)
        product = self.evaluator.multiply(self.encrypt(self.x), self.encrypt(self.y))
        with pytest.raises(InvalidSize):
            self.evaluator.add(product, self.evaluator.align_scale(a, product.scale, 1.0))

    def test_add_from_another_context(self):
        other_context = CKKSContext(CKKSCryptographicParameters.fast_config())
        _, other_pk = CKKSKeyFactory(other_context).generate_keypair()
        foreign = CKKSEncryptor(other_context, other_pk).encrypt(
            CKKSEncoder(other_context).encode(self.y)
        )
        with pytest.raises(ModulusMismatch):
            self.evaluator.add(self.encrypt(self.x), foreign)

    def test_not_a_ciphertext(self):
        with pytest.raises(EvaluatorError):
            self.evaluator.negate(self.encoder.encode(self.x))


class TestMultiplication(EvaluatorTestBase):
    """Testes de multiplicação e relinearização"""

    def test_multiply(self):
        """Produto tem 3 componentes e escala a·b"""
        a = self.encrypt(self.x)
        b = self.encrypt(self.y)
        product = self.evaluator.multiply(a, b)

        assert product.size == 3
        assert product.scale == 2.0**80
        assert product.position == a.position
        np.testing.assert_allclose(self.decode(product), self.x * self.y, atol=1e-3)

    def test_square_matches_multiply(self):
        a = self.encrypt(self.x)
        squared = self.evaluator.square(a)
        assert squared.size == 3
        assert squared.scale == 2.0**80
        np.testing.assert_allclose(self.decode(squared), self.x**2, atol=1e-3)

    def test_multiply_plain(self):
        ct = self.encrypt(self.x)
        plain = self.encoder.encode(self.y, 2**40)
        product = self.evaluator.multiply_plain(ct, plain)
        assert product.size == 2
        assert product.scale == 2.0**80
        np.testing.assert_allclose(self.decode(product), self.x * self.y, atol=1e-3)

    def test_multiply_size_three(self):
        """Multiplicação sem relinearização: tamanhos se somam"""
        a = self.encrypt(self.x)
        product = self.evaluator.multiply(a, a)
        cubed = self.evaluator.multiply(
            self.evaluator.rescale_to_next(product),
            self.evaluator.mod_switch_to_next(a),
        )
        assert cubed.size == 4
        np.testing.assert_allclose(self.decode(cubed), self.x**3, atol=1e-3)

    def test_relinearize(self):
        """Relinearização: 3 -> 2 componentes, escala e posição preservadas"""
        product = self.evaluator.multiply(self.encrypt(self.x), self.encrypt(self.y))
        relinearized = self.evaluator.relinearize(product, self.keyset["relin_keys"])

        assert relinearized.size == 2
        assert relinearized.scale == product.scale
        assert relinearized.position == product.position
        np.testing.assert_allclose(self.decode(relinearized), self.x * self.y, atol=1e-3)

    def test_relinearize_twice(self):
        """Segunda relinearização falha com InvalidSize"""
        product = self.evaluator.multiply(self.encrypt(self.x), self.encrypt(self.y))
        relinearized = self.evaluator.relinearize(product, self.keyset["relin_keys"])
        with pytest.raises(InvalidSize):
            self.evaluator.relinearize(relinearized, self.keyset["relin_keys"])

    def test_relinearize_size_four(self):
        a = self.encrypt(self.x)
        cubed = self.evaluator.multiply(
            self.evaluator.rescale_to_next(self.evaluator.multiply(a, a)),
            self.evaluator.mod_switch_to_next(a),
        )
        with pytest.raises(InvalidSize):
            self.evaluator.relinearize(cubed, self.keyset["relin_keys"])

    def test_relinearize_at_lower_position(self):
        """Chaves geradas em Q·P servem a qualquer posição"""
        a = self.encrypt(self.x, 2**40, self.context.position(1))
        product = self.evaluator.square(a)
        relinearized = self.evaluator.relinearize(product, self.keyset["relin_keys"])
        np.testing.assert_allclose(self.decode(relinearized), self.x**2, atol=1e-3)

    def test_multiply_different_positions(self):
        a = self.encrypt(self.x)
        b = self.encrypt(self.y, 2**40, self.context.position(1))
        with pytest.raises(ModulusMismatch):
            self.evaluator.multiply(a, b)

    def test_multiply_at_terminal_position(self):
        """Sem primo para o rescale do produto"""
        last = self.context.last_position
        a = self.encrypt(self.x, 2**20, last)
        with pytest.raises(ChainExhausted):
            self.evaluator.multiply(a, a)
        with pytest.raises(ChainExhausted):
            self.evaluator.square(a)

    def test_multiply_plain_at_terminal_position(self):
        """Produto por plaintext continua linear e é aceito se a escala couber"""
        last = self.context.last_position
        ct = self.encrypt(self.x, 2**30, last)
        plain = self.encoder.encode(self.y, 2**25, last)
        product = self.evaluator.multiply_plain(ct, plain)

        assert product.position == last
        assert product.scale == 2.0**55
        np.testing.assert_allclose(self.decode(product), self.x * self.y, atol=1e-3)

        with pytest.raises(ScaleOutOfBounds):
            self.evaluator.multiply_plain(ct, self.encoder.encode(self.y, 2**30, last))

    def test_relinearize_with_other_decomposition(self):
        """Chaves de uma cadeia com outro número de primos geram InvalidSize"""
        other_context = CKKSContext(
            CKKSCryptographicParameters(poly_modulus_degree=1024, coeff_modulus_bits=(60, 40, 60))
        )
        other_factory = CKKSKeyFactory(other_context, np.random.default_rng(7))
        other_relin_keys = other_factory.generate_relin_keys(other_factory.generate_secret_key())

        product = self.evaluator.square(self.encrypt(self.x))
        with pytest.raises(InvalidSize):
            self.evaluator.relinearize(product, other_relin_keys)

    def test_relinearize_with_keys_from_other_context(self):
        """Mesma decomposição, mas outro contexto: EvaluatorError"""
        other_context = CKKSContext(CKKSCryptographicParameters.fast_config())
        other_factory = CKKSKeyFactory(other_context, np.random.default_rng(7))
        other_relin_keys = other_factory.generate_relin_keys(other_factory.generate_secret_key())

        product = self.evaluator.square(self.encrypt(self.x))
        with pytest.raises(EvaluatorError):
            self.evaluator.relinearize(product, other_relin_keys)

    def test_scale_out_of_bounds(self):
        """Escala do produto maior que o módulo ativo"""
        position = self.context.position(1)  # 100 bits
        a = self.encrypt(self.x, 2**55, position)
        with pytest.raises(ScaleOutOfBounds):
            self.evaluator.multiply(a, a)


class TestLevelManagement(EvaluatorTestBase):
    """Testes de rescale, mod switching e alinhamento de escala"""

    def test_rescale_to_next(self):
        """Rescale avança uma posição e divide a escala pelo primo descartado"""
        product = self.evaluator.relinearize(
            self.evaluator.multiply(self.encrypt(self.x), self.encrypt(self.y)),
            self.keyset["relin_keys"],
        )
        dropped = self.context.dropped_prime(product.position)
        rescaled = self.evaluator.rescale_to_next(product)

        assert rescaled.position == self.context.next(product.position)
        assert rescaled.level == product.level + 1
        assert math.isclose(rescaled.scale, product.scale / dropped, rel_tol=1e-6)
        assert math.isclose(rescaled.scale, 2**40, rel_tol=1e-3)
        np.testing.assert_allclose(self.decode(rescaled), self.x * self.y, atol=1e-3)

    @pytest.mark.parametrize("level", [0, 1])
    def test_rescale_every_level(self, level):
        position = self.context.position(level)
        a = self.encrypt(self.x, 2.0**80, position)
        dropped = self.context.dropped_prime(position)
        rescaled = self.evaluator.rescale_to_next(a)

        assert rescaled.position == self.context.position(level + 1)
        assert math.isclose(rescaled.scale, 2.0**80 / dropped, rel_tol=1e-6)
        np.testing.assert_allclose(self.decode(rescaled), self.x, atol=1e-3)

    def test_rescale_at_terminal_position(self):
        last = self.context.last_position
        a = self.encrypt(self.x, 2**40, last)
        with pytest.raises(ChainExhausted):
            self.evaluator.rescale_to_next(a)

    def test_rescale_to(self):
        a = self.encrypt(self.x)
        result = self.evaluator.rescale_to(a, self.context.last_position)
        assert result.position == self.context.last_position

        with pytest.raises(InvalidTarget):
            self.evaluator.rescale_to(result, self.context.first_position)

    def test_mod_switch_to(self):
        """Mod switching descarta primos sem alterar escala nem valores"""
        a = self.encrypt(self.x)
        last = self.context.last_position
        switched = self.evaluator.mod_switch_to(a, last)

        assert switched.position == last
        assert switched.scale == a.scale
        np.testing.assert_allclose(self.decode(switched), self.x, atol=1e-3)

    def test_mod_switch_to_same_position(self):
        a = self.encrypt(self.x)
        same = self.evaluator.mod_switch_to(a, a.position)
        assert same is not a
        assert same.position == a.position

    def test_mod_switch_backwards(self):
        a = self.evaluator.mod_switch_to_next(self.encrypt(self.x))
        with pytest.raises(InvalidTarget):
            self.evaluator.mod_switch_to(a, self.context.first_position)

    def test_mod_switch_foreign_target(self):
        a = self.encrypt(self.x)
        with pytest.raises(InvalidTarget):
            self.evaluator.mod_switch_to(a, ChainPosition(1, (17, 97)))

    def test_mod_switch_to_next_at_terminal(self):
        a = self.encrypt(self.x, 2**40, self.context.last_position)
        with pytest.raises(ChainExhausted):
            self.evaluator.mod_switch_to_next(a)

    def test_mod_switch_plaintext(self):
        """Plaintexts também descem a cadeia para multiplicar com ciphertexts"""
        plain = self.encoder.encode(self.y, 2**40)
        ct = self.encrypt(self.x, 2**40, self.context.position(1))

        switched = self.evaluator.mod_switch_to_next(plain)
        assert switched.position == ct.position
        assert switched.data.moduli == ct.position.moduli

        product = self.evaluator.multiply_plain(ct, switched)
        np.testing.assert_allclose(self.decode(product), self.x * self.y, atol=1e-3)

    def test_align_scale(self):
        """Alinhamento dentro da tolerância sobrescreve a escala"""
        product = self.evaluator.multiply(self.encrypt(self.x), self.encrypt(self.y))
        rescaled = self.evaluator.rescale_to_next(product)
        assert rescaled.scale != 2**40

        aligned = self.evaluator.align_scale(rescaled, 2**40)
        assert aligned.scale == 2**40
        assert aligned.position == rescaled.position
        np.testing.assert_allclose(self.decode(aligned), self.x * self.y, atol=1e-3)

    def test_align_scale_too_far(self):
        a = self.encrypt(self.x, 2**40)
        with pytest.raises(ScaleMismatch):
            self.evaluator.align_scale(a, 2**41)
        with pytest.raises(ScaleMismatch):
            self.evaluator.align_scale(a, 2**40 * (1 + 1e-3), tolerance=1e-4)

        aligned = self.evaluator.align_scale(a, 2**40 * (1 + 1e-3), tolerance=1e-2)
        assert aligned.scale == 2**40 * (1 + 1e-3)

    def test_align_scale_invalid_target(self):
        with pytest.raises(ValueError):
            self.evaluator.align_scale(self.encrypt(self.x), 0.0)
        with pytest.raises(ValueError):
            self.evaluator.align_scale(self.encrypt(self.x), float("inf"))
        with pytest.raises(ValueError):
            self.evaluator.align_scale(self.encrypt(self.x), float("nan"))

    def test_align_scale_invalid_tolerance(self):
        """Tolerância NaN, infinita ou negativa não pode liberar o alinhamento"""
        a = self.encrypt(self.x, 2**40)
        for tolerance in (float("nan"), float("inf"), -1e-4):
            with pytest.raises(ValueError):
                self.evaluator.align_scale(a, 2**41, tolerance=tolerance)

    def test_x_squared_plus_x(self):
        """Sequência completa: square, relinearize, rescale, mod_switch, align, add"""
        x1 = self.encrypt(self.x)
        x2 = self.evaluator.relinearize(self.evaluator.square(x1), self.keyset["relin_keys"])
        x2 = self.evaluator.rescale_to_next(x2)

        with pytest.raises(ModulusMismatch):
            self.evaluator.add(x2, x1)

        x1 = self.evaluator.mod_switch_to(x1, x2.position)
        with pytest.raises(ScaleMismatch):
            self.evaluator.add(x2, x1)

        x2 = self.evaluator.align_scale(x2, 2**40)
        x1 = self.evaluator.align_scale(x1, 2**40)
        result = self.evaluator.add(x2, x1)

        np.testing.assert_allclose(self.decode(result), self.x**2 + self.x, atol=1e-3)


class TestRotation(EvaluatorTestBase):
    """Testes de rotação de slots"""

    def setup_method(self):
        super().setup_method()
        self.galois_keys = self.key_factory.generate_galois_keys(
            self.keyset["secret_key"], steps=[1, -2]
        )

    def test_rotate_left(self):
        ct = self.evaluator.rotate_vector(self.encrypt(self.x), 1, self.galois_keys)
        np.testing.assert_allclose(self.decode(ct), np.roll(self.x, -1), atol=1e-3)

    def test_rotate_right(self):
        ct = self.evaluator.rotate_vector(self.encrypt(self.x), -2, self.galois_keys)
        np.testing.assert_allclose(self.decode(ct), np.roll(self.x, 2), atol=1e-3)

    def test_rotate_full_cycle(self):
        a = self.encrypt(self.x)
        ct = self.evaluator.rotate_vector(a, self.encoder.slot_count, self.galois_keys)
        np.testing.assert_allclose(self.decode(ct), self.x, atol=1e-3)

    def test_rotate_missing_key(self):
        with pytest.raises(EvaluatorError):
            self.evaluator.rotate_vector(self.encrypt(self.x), 3, self.galois_keys)

    def test_rotate_requires_linear_ciphertext(self):
        a = self.encrypt(self.x)
        with pytest.raises(InvalidSize):
            self.evaluator.rotate_vector(self.evaluator.square(a), 1, self.galois_keys)


class TestEndToEnd:
    """x^2 + x em 4096 pontos com N=8192, cadeia [60, 40, 40, 60] e escala 2^40"""

    def test_x_squared_plus_x(self):
        crypto_params = CKKSCryptographicParameters.basic_config()
        context = CKKSContext(crypto_params)
        keyset = CKKSKeyFactory(context, np.random.default_rng(2023)).generate_full_keyset()

        encoder = CKKSEncoder(context)
        encryptor = CKKSEncryptor(context, keyset["public_key"])
        decryptor = CKKSDecryptor(context, keyset["secret_key"])
        evaluator = CKKSEvaluator(context)

        assert encoder.slot_count == 4096
        x = np.linspace(0.0, 1.0, 4096, endpoint=False)
        scale = 2.0**40

        x1 = encryptor.encrypt(encoder.encode(x, scale))
        x2 = evaluator.relinearize(evaluator.square(x1), keyset["relin_keys"])
        assert x2.size == 2
        assert math.isclose(math.log2(x2.scale), 80.0)

        x2 = evaluator.rescale_to_next(x2)
        assert x2.level == 1
        assert math.isclose(math.log2(x2.scale), 40.0, abs_tol=1e-3)

        x1 = evaluator.mod_switch_to(x1, x2.position)
        x2 = evaluator.align_scale(x2, scale)
        x1 = evaluator.align_scale(x1, scale)
        result = evaluator.add(x2, x1)

        decoded = encoder.decode(decryptor.decrypt(result))
        assert np.max(np.abs(decoded - (x * x + x))) < 1e-3
