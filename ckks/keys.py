"""
Material de chaves CKKS como objetos de capacidade opacos.

As chaves são criadas apenas pelo CKKSKeyFactory, ficam presas ao contexto
que as gerou e nunca são alteradas depois da geração. Os dados internos são
privados ao pacote.
"""


def galois_element(step: int, degree: int) -> int:
    """
    Elemento de Galois para rotação à esquerda por `step` slots: 5^step mod 2N.

    Passos negativos giram à direita (5 tem ordem N/2 módulo 2N).
    """
    slots = degree // 2
    return pow(5, step % slots, 2 * degree)


class _KeyMaterial:
    __slots__ = ("_context",)

    def __init__(self, context):
        self._context = context

    @property
    def context(self):
        return self._context

    def __repr__(self):
        return f"<{type(self).__name__} N={self._context.poly_modulus_degree}>"


class SecretKey(_KeyMaterial):
    """Chave secreta sk = (1, s)."""

    __slots__ = ("_data",)

    def __init__(self, context, data):
        super().__init__(context)
        self._data = data  # s em forma NTT sobre key_moduli


class PublicKey(_KeyMaterial):
    """Chave pública pk = (b, a) com b = -a·s + e."""

    __slots__ = ("_data",)

    def __init__(self, context, data):
        super().__init__(context)
        self._data = tuple(data)  # (b, a) em forma NTT sobre key_moduli


class _KSwitchKey:
    """Um par (b_j, a_j) por primo de dados, cifrando P·s'·[j] sob s."""

    __slots__ = ("_components",)

    def __init__(self, components):
        self._components = tuple(components)

    def __len__(self):
        return len(self._components)


class RelinKeys(_KeyMaterial):
    """Chaves de relinearização (key switching de s² para s)."""

    __slots__ = ("_key",)

    def __init__(self, context, key: _KSwitchKey):
        super().__init__(context)
        self._key = key

    @property
    def decomposition_count(self) -> int:
        return len(self._key)


class GaloisKeys(_KeyMaterial):
    """Chaves de Galois para rotações (key switching de s(X^g) para s)."""

    __slots__ = ("_keys",)

    def __init__(self, context, keys: dict):
        super().__init__(context)
        self._keys = dict(keys)

    @property
    def galois_elements(self):
        return tuple(sorted(self._keys))

    def has_step(self, step: int) -> bool:
        return galois_element(step, self._context.poly_modulus_degree) in self._keys
