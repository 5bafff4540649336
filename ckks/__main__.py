"""
Demonstração: avalia x^2 + x em 4096 pontos de [0, 1] (exemplo "CKKS basics")
e gira o resultado um slot com chaves de Galois.

Uso:
    python -m ckks            # N=8192, cadeia [60, 40, 40, 60]
    python -m ckks --fast     # N=1024, apenas para depuração
"""

import logging
import math
import sys

import numpy as np

from .constants import CKKSCryptographicParameters
from .encoder import CKKSEncoder
from .encryptor import CKKSDecryptor, CKKSEncryptor
from .evaluator import CKKSEvaluator
from .key_factory import CKKSKeyFactory
from .modulus import CKKSContext


def print_vector(values, count=3):
    head = ", ".join(f"{v:.7f}" for v in values[:count])
    tail = ", ".join(f"{v:.7f}" for v in values[-count:])
    print(f"    [ {head}, ..., {tail} ]")


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if "--fast" in argv:
        crypto_params = CKKSCryptographicParameters.fast_config()
    else:
        crypto_params = CKKSCryptographicParameters.basic_config()

    context = CKKSContext(crypto_params)
    context.print_parameters_summary()

    key_factory = CKKSKeyFactory(context)
    keyset = key_factory.generate_full_keyset(galois_steps=[1])

    encoder = CKKSEncoder(context)
    encryptor = CKKSEncryptor(context, public_key=keyset["public_key"])
    decryptor = CKKSDecryptor(context, keyset["secret_key"])
    evaluator = CKKSEvaluator(context)

    slot_count = encoder.slot_count
    print(f"Número de slots: {slot_count}")

    x = np.linspace(0.0, 1.0, slot_count)
    print("Vetor de entrada:")
    print_vector(x)

    print("Avaliando o polinômio x^2 + x ...")
    scale = crypto_params.SCALING_FACTOR
    x1 = encryptor.encrypt(encoder.encode(x, scale))

    print("Calcula x^2 e relineariza:")
    x2 = evaluator.relinearize(evaluator.square(x1), keyset["relin_keys"])
    print(f"    + Escala de x^2 antes do rescale: {math.log2(x2.scale):.6f} bits")

    x2 = evaluator.rescale_to_next(x2)
    print(f"    + Escala de x^2 após o rescale: {math.log2(x2.scale):.6f} bits")

    print("Posições diferentes na cadeia:")
    print(f"    + x^2: nível {x2.level}")
    print(f"    + x:   nível {x1.level}")

    x1 = evaluator.mod_switch_to(x1, x2.position)
    print(f"    + x após mod_switch_to: nível {x1.level}")

    print(f"Normaliza as escalas para 2^{math.log2(scale):.0f}.")
    x2 = evaluator.align_scale(x2, scale)
    x1 = evaluator.align_scale(x1, scale)

    print("Calcula x^2 + x.")
    result = evaluator.add(x2, x1)
    result.print_summary()

    expected = x * x + x
    decoded = encoder.decode(decryptor.decrypt(result))
    print("    + Resultado esperado:")
    print_vector(expected)
    print("    + Resultado calculado:")
    print_vector(decoded)

    max_error = float(np.max(np.abs(decoded - expected)))
    print(f"Erro máximo: {max_error:.3e}")

    print("Gira o resultado um slot para a esquerda:")
    rotated = evaluator.rotate_vector(result, 1, keyset["galois_keys"])
    rotated_decoded = encoder.decode(decryptor.decrypt(rotated))
    print_vector(rotated_decoded)

    rotation_error = float(np.max(np.abs(rotated_decoded - np.roll(expected, -1))))
    print(f"Erro máximo após a rotação: {rotation_error:.3e}")
    return 0 if max(max_error, rotation_error) < 1e-3 else 1


if __name__ == "__main__":
    sys.exit(main())
