"""
Avaliador CKKS: operações homomórficas com controle de escala e de nível.

O estado de cada ciphertext é a tripla (posição, tamanho, escala); cada
operação verifica a compatibilidade dos operandos e devolve um NOVO
ciphertext, sem alterar as entradas.

Transições:
- add/sub:            mesma posição, mesma escala, mesmo tamanho
- multiply/square:    mesma posição; tamanho a+b-1; escala a·b
- relinearize:        tamanho 3 -> 2 (key switching de s² para s)
- rescale_to_next:    descarta o último primo q dividindo; escala / q
- mod_switch_to:      descarta primos sem dividir; escala inalterada
- align_scale:        sobrescreve a escala, somente dentro da tolerância
"""

import logging
import math
from functools import reduce

from .ckks import CKKSCiphertext, CKKSPlaintext
from .errors import (
    ChainExhausted,
    EvaluatorError,
    InvalidSize,
    InvalidTarget,
    MalformedPlaintext,
    ModulusMismatch,
    ScaleMismatch,
    ScaleOutOfBounds,
)
from .keys import GaloisKeys, RelinKeys, galois_element
from .modulus import ChainPosition, CKKSContext

logger = logging.getLogger(__name__)


class CKKSEvaluator:
    """
    Executa operações homomórficas sobre ciphertexts de um contexto.

    Não guarda estado mutável: pode ser compartilhado entre threads que
    processam ciphertexts independentes.
    """

    def __init__(self, context: CKKSContext):
        self.context = context
        self.crypto_params = context.crypto_params

    # === VALIDAÇÕES ===
    def _check_ciphertext(self, ciphertext):
        if not isinstance(ciphertext, CKKSCiphertext):
            raise EvaluatorError(f"Esperado CKKSCiphertext, recebido {type(ciphertext).__name__}")
        if ciphertext.context is not self.context:
            raise ModulusMismatch("Ciphertext pertence a outro contexto")

    def _check_plaintext(self, plaintext):
        if not isinstance(plaintext, CKKSPlaintext) or plaintext.context is not self.context:
            raise MalformedPlaintext("Plaintext de outro contexto ou tipo inválido")
        if not plaintext.is_well_formed():
            raise MalformedPlaintext("Plaintext malformado")

    @staticmethod
    def _check_same_position(a, b):
        if a.position != b.position:
            raise ModulusMismatch(
                f"Operandos em posições diferentes da cadeia: {a.position} e {b.position}"
            )

    def _check_same_scale(self, a_scale: float, b_scale: float):
        if not math.isclose(a_scale, b_scale, rel_tol=self.crypto_params.SCALE_TOLERANCE):
            raise ScaleMismatch(
                f"Escalas incompatíveis: 2^{math.log2(a_scale):.6f} e 2^{math.log2(b_scale):.6f}"
            )

    def _check_can_multiply(self, position: ChainPosition, new_scale: float, needs_rescale: bool = True):
        if needs_rescale and self.context.next(position) is None:
            raise ChainExhausted(
                f"Multiplicação em {position}: não há primo para o rescale do produto"
            )
        if math.log2(new_scale) >= position.bit_count:
            raise ScaleOutOfBounds(
                f"Escala 2^{math.log2(new_scale):.2f} excede o módulo de {position.bit_count} bits"
            )

    def _result(self, components, position, scale) -> CKKSCiphertext:
        return CKKSCiphertext(components, position, scale, self.context)

    # === ADIÇÃO ===
    def add(self, a: CKKSCiphertext, b: CKKSCiphertext) -> CKKSCiphertext:
        """
        Soma homomórfica componente a componente.

        Raises:
            ModulusMismatch: Posições diferentes
            ScaleMismatch: Escalas diferentes
            InvalidSize: Tamanhos diferentes
        """
        self._check_ciphertext(a)
        self._check_ciphertext(b)
        self._check_same_position(a, b)
        if a.size != b.size:
            raise InvalidSize(f"Tamanhos diferentes: {a.size} e {b.size}")
        self._check_same_scale(a.scale, b.scale)

        components = [x + y for x, y in zip(a.components, b.components)]
        logger.debug("add em %s, escala %.6e", a.position, a.scale)
        return self._result(components, a.position, a.scale)

    def sub(self, a: CKKSCiphertext, b: CKKSCiphertext) -> CKKSCiphertext:
        """Subtração homomórfica, com as mesmas regras de add."""
        self._check_ciphertext(a)
        self._check_ciphertext(b)
        self._check_same_position(a, b)
        if a.size != b.size:
            raise InvalidSize(f"Tamanhos diferentes: {a.size} e {b.size}")
        self._check_same_scale(a.scale, b.scale)

        components = [x - y for x, y in zip(a.components, b.components)]
        return self._result(components, a.position, a.scale)

    def negate(self, a: CKKSCiphertext) -> CKKSCiphertext:
        self._check_ciphertext(a)
        return self._result([-comp for comp in a.components], a.position, a.scale)

    def add_many(self, ciphertexts) -> CKKSCiphertext:
        """Soma uma sequência não vazia de ciphertexts compatíveis."""
        ciphertexts = list(ciphertexts)
        if not ciphertexts:
            raise ValueError("add_many exige ao menos um ciphertext")
        if len(ciphertexts) == 1:
            self._check_ciphertext(ciphertexts[0])
            return ciphertexts[0].copy()
        return reduce(self.add, ciphertexts)

    def add_plain(self, a: CKKSCiphertext, plaintext: CKKSPlaintext) -> CKKSCiphertext:
        """Soma um plaintext de mesma posição e escala."""
        self._check_ciphertext(a)
        self._check_plaintext(plaintext)
        self._check_same_position(a, plaintext)
        self._check_same_scale(a.scale, plaintext.scale)

        components = [comp.copy() for comp in a.components]
        components[0] = components[0] + plaintext.data
        return self._result(components, a.position, a.scale)

    def sub_plain(self, a: CKKSCiphertext, plaintext: CKKSPlaintext) -> CKKSCiphertext:
        """Subtrai um plaintext de mesma posição e escala."""
        self._check_ciphertext(a)
        self._check_plaintext(plaintext)
        self._check_same_position(a, plaintext)
        self._check_same_scale(a.scale, plaintext.scale)

        components = [comp.copy() for comp in a.components]
        components[0] = components[0] - plaintext.data
        return self._result(components, a.position, a.scale)

    # === MULTIPLICAÇÃO ===
    def multiply(self, a: CKKSCiphertext, b: CKKSCiphertext) -> CKKSCiphertext:
        """
        Multiplicação homomórfica (sem relinearização).

        Para c1 = (b1, a1), c2 = (b2, a2) calcula
        (d0, d1, d2) = (b1·b2, a1·b2 + a2·b1, a1·a2); em geral o resultado
        tem a.size + b.size - 1 componentes e escala a.scale · b.scale.

        Raises:
            ModulusMismatch: Posições diferentes
            ChainExhausted: Operandos na posição terminal
            ScaleOutOfBounds: Escala do produto não cabe no módulo ativo
        """
        self._check_ciphertext(a)
        self._check_ciphertext(b)
        self._check_same_position(a, b)
        new_scale = a.scale * b.scale
        self._check_can_multiply(a.position, new_scale)

        a_ntt = [comp.to_ntt() for comp in a.components]
        b_ntt = a_ntt if b is a else [comp.to_ntt() for comp in b.components]

        products = [None] * (a.size + b.size - 1)
        for i, x in enumerate(a_ntt):
            for j, y in enumerate(b_ntt):
                term = x * y
                products[i + j] = term if products[i + j] is None else products[i + j] + term

        components = [p.from_ntt() for p in products]
        logger.debug(
            "multiply em %s: tamanho %d, escala 2^%.4f",
            a.position,
            len(components),
            math.log2(new_scale),
        )
        return self._result(components, a.position, new_scale)

    def square(self, a: CKKSCiphertext) -> CKKSCiphertext:
        """
        Quadrado homomórfico de um ciphertext linear: (c0², 2·c0·c1, c1²).
        """
        self._check_ciphertext(a)
        if a.size != 2:
            return self.multiply(a, a)

        new_scale = a.scale * a.scale
        self._check_can_multiply(a.position, new_scale)

        c0, c1 = (comp.to_ntt() for comp in a.components)
        cross = c0 * c1
        components = [(c0 * c0).from_ntt(), (cross + cross).from_ntt(), (c1 * c1).from_ntt()]
        logger.debug("square em %s, escala 2^%.4f", a.position, math.log2(new_scale))
        return self._result(components, a.position, new_scale)

    def multiply_plain(self, a: CKKSCiphertext, plaintext: CKKSPlaintext) -> CKKSCiphertext:
        """
        Multiplica por um plaintext na mesma posição; as escalas se multiplicam.

        O resultado continua linear, então é aceito também na posição
        terminal desde que a escala do produto caiba no módulo ativo.

        Raises:
            ModulusMismatch: Posições diferentes
            ScaleOutOfBounds: Escala do produto não cabe no módulo ativo
        """
        self._check_ciphertext(a)
        self._check_plaintext(plaintext)
        self._check_same_position(a, plaintext)
        new_scale = a.scale * plaintext.scale
        self._check_can_multiply(a.position, new_scale, needs_rescale=False)

        plain_ntt = plaintext.data.to_ntt()
        components = [(comp.to_ntt() * plain_ntt).from_ntt() for comp in a.components]
        return self._result(components, a.position, new_scale)

    # === KEY SWITCHING ===
    def _switch_key(self, target, kswitch_key):
        """
        Key switching RNS com primo especial.

        Decompõe `target` em seus limbs [target]_{q_j}, multiplica cada um
        pela componente j da chave sobre (primos ativos + P) e divide o
        acumulado por P com arredondamento.

        Returns:
            tuple: (k0, k1) tais que k0 + k1·s ≈ target·s'
        """
        moduli = target.moduli
        count = len(moduli)
        components = kswitch_key._components

        key_indices = list(range(count)) + [len(self.context.key_moduli) - 1]
        extended = moduli + (self.context.special_prime,)

        acc0 = acc1 = None
        for j in range(count):
            digit = target.lift_row(j, extended).to_ntt()
            key_b, key_a = components[j]
            t0 = digit * key_b.select(key_indices)
            t1 = digit * key_a.select(key_indices)
            acc0 = t0 if acc0 is None else acc0 + t0
            acc1 = t1 if acc1 is None else acc1 + t1

        return (
            acc0.from_ntt().divide_and_round_by_last(),
            acc1.from_ntt().divide_and_round_by_last(),
        )

    def relinearize(self, a: CKKSCiphertext, relin_keys: RelinKeys) -> CKKSCiphertext:
        """
        Relineariza um ciphertext de 3 componentes para 2.

        (d0, d1, d2) -> (d0 + k0, d1 + k1), com k0 + k1·s ≈ d2·s².
        Posição e escala são preservadas.

        Raises:
            InvalidSize: Se o ciphertext não tiver exatamente 3 componentes ou
                as chaves não corresponderem à decomposição do contexto
        """
        self._check_ciphertext(a)
        if not isinstance(relin_keys, RelinKeys):
            raise EvaluatorError(f"Esperadas RelinKeys, recebido {type(relin_keys).__name__}")
        if relin_keys.decomposition_count != len(self.context.data_moduli):
            raise InvalidSize(
                f"Chaves com {relin_keys.decomposition_count} componentes de decomposição, "
                f"esperadas {len(self.context.data_moduli)}"
            )
        if relin_keys.context is not self.context:
            raise EvaluatorError("Chaves de relinearização de outro contexto")
        if a.size != 3:
            raise InvalidSize(
                f"Relinearização requer ciphertext com exatamente 3 componentes. "
                f"Recebido: {a.size} componentes"
            )

        d0, d1, d2 = a.components
        k0, k1 = self._switch_key(d2, relin_keys._key)

        logger.debug("relinearize em %s", a.position)
        return self._result([d0 + k0, d1 + k1], a.position, a.scale)

    def rotate_vector(self, a: CKKSCiphertext, steps: int, galois_keys: GaloisKeys) -> CKKSCiphertext:
        """
        Rotação cíclica dos slots para a esquerda por `steps` (negativo gira à direita).

        Raises:
            InvalidSize: Se o ciphertext não for linear
            EvaluatorError: Se não houver chave de Galois para o passo
        """
        self._check_ciphertext(a)
        if not isinstance(galois_keys, GaloisKeys) or galois_keys.context is not self.context:
            raise EvaluatorError("Chaves de Galois inválidas ou de outro contexto")
        if a.size != 2:
            raise InvalidSize(f"Rotação requer ciphertext linear, recebido tamanho {a.size}")

        if steps % self.context.slot_count == 0:
            return a.copy()

        elt = galois_element(steps, self.context.poly_modulus_degree)
        if elt not in galois_keys._keys:
            raise EvaluatorError(f"Sem chave de Galois para rotação de {steps} passos")

        c0 = a.components[0].apply_galois(elt)
        c1 = a.components[1].apply_galois(elt)
        k0, k1 = self._switch_key(c1, galois_keys._keys[elt])

        logger.debug("rotate_vector(%d) em %s", steps, a.position)
        return self._result([c0 + k0, k1], a.position, a.scale)

    # === CONTROLE DE NÍVEL ===
    def rescale_to_next(self, a: CKKSCiphertext) -> CKKSCiphertext:
        """
        Rescale: divide por q (último primo ativo) com arredondamento.

        A nova escala é exatamente a.scale / q; como q é apenas próximo de
        2^bits, ela não é a escala nominal e deve ser acompanhada.

        Raises:
            ChainExhausted: Se o ciphertext já está na posição terminal
        """
        self._check_ciphertext(a)
        next_position = self.context.next(a.position)
        if next_position is None:
            raise ChainExhausted(f"Não há mais níveis para rescalonar a partir de {a.position}")

        q = self.context.dropped_prime(a.position)
        components = [comp.divide_and_round_by_last() for comp in a.components]
        new_scale = a.scale / q

        logger.debug(
            "rescale %s -> %s: escala 2^%.6f -> 2^%.6f",
            a.position,
            next_position,
            math.log2(a.scale),
            math.log2(new_scale),
        )
        return self._result(components, next_position, new_scale)

    def _check_target(self, value, target: ChainPosition):
        if not self.context.is_valid_position(target):
            raise InvalidTarget(f"Posição alvo {target} não pertence ao contexto")
        if target.level < value.position.level:
            raise InvalidTarget(
                f"Não é possível voltar de {value.position} para {target}"
            )

    def rescale_to(self, a: CKKSCiphertext, target: ChainPosition) -> CKKSCiphertext:
        """Aplica rescale_to_next até chegar à posição alvo."""
        self._check_ciphertext(a)
        self._check_target(a, target)
        result = a.copy()
        while result.position != target:
            result = self.rescale_to_next(result)
        return result

    def mod_switch_to_next(self, value):
        """
        Descarta o último primo ativo sem dividir (escala inalterada).

        Aceita ciphertexts e plaintexts.

        Raises:
            ChainExhausted: Na posição terminal
        """
        if isinstance(value, CKKSPlaintext):
            self._check_plaintext(value)
        else:
            self._check_ciphertext(value)

        next_position = self.context.next(value.position)
        if next_position is None:
            raise ChainExhausted(f"Não há próxima posição a partir de {value.position}")
        return self.mod_switch_to(value, next_position)

    def mod_switch_to(self, value, target: ChainPosition):
        """
        Leva um ciphertext (ou plaintext) até `target` descartando primos.

        Raises:
            InvalidTarget: Se o alvo for anterior à posição atual ou de outro contexto
        """
        if isinstance(value, CKKSPlaintext):
            self._check_plaintext(value)
        else:
            self._check_ciphertext(value)
        self._check_target(value, target)

        dropped = len(value.position.moduli) - len(target.moduli)

        if isinstance(value, CKKSPlaintext):
            data = value.data.drop_last(dropped) if dropped else value.data.copy()
            return CKKSPlaintext(data, target, value.scale, self.context)

        components = [
            comp.drop_last(dropped) if dropped else comp.copy() for comp in value.components
        ]
        logger.debug("mod_switch %s -> %s", value.position, target)
        return self._result(components, target, value.scale)

    def align_scale(
        self, a: CKKSCiphertext, target_scale: float, tolerance: float = None
    ) -> CKKSCiphertext:
        """
        Sobrescreve a escala com um valor nominal (ex.: 2^40).

        É uma aproximação deliberada: o erro relativo introduzido nos valores
        é |a.scale - target| / target, e a operação só é aceita se esse erro
        não passar da tolerância.

        Args:
            a: Ciphertext
            target_scale: Escala nominal desejada
            tolerance: Erro relativo máximo (usa SCALE_ALIGNMENT_TOLERANCE se None)

        Raises:
            ScaleMismatch: Se a diferença relativa exceder a tolerância
            ValueError: Escala alvo ou tolerância não finitas, ou fora do domínio
        """
        self._check_ciphertext(a)
        if tolerance is None:
            tolerance = self.crypto_params.SCALE_ALIGNMENT_TOLERANCE
        if not (math.isfinite(target_scale) and target_scale > 0):
            raise ValueError(f"Escala alvo deve ser positiva e finita, recebido: {target_scale}")
        if not (math.isfinite(tolerance) and tolerance >= 0):
            raise ValueError(f"Tolerância deve ser finita e não negativa, recebido: {tolerance}")

        gap = abs(a.scale - target_scale) / target_scale
        if not gap <= tolerance:
            raise ScaleMismatch(
                f"Diferença relativa de escala {gap:.3e} excede a tolerância {tolerance:.3e}"
            )

        logger.debug(
            "align_scale: 2^%.6f -> 2^%.6f (erro relativo %.3e)",
            math.log2(a.scale),
            math.log2(target_scale),
            gap,
        )
        return self._result([comp.copy() for comp in a.components], a.position, target_scale)
