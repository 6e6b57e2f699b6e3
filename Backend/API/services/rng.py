import hmac, hashlib, secrets


def new_seed(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


def hash_seed(seed: str) -> str:
    return hashlib.sha256(seed.encode()).hexdigest()


def verify_commitment(server_seed: str, server_seed_hash: str) -> bool:
    return hmac.compare_digest(hash_seed(server_seed), server_seed_hash.strip().lower())


def pf_roll(server_seed: str, client_seed: str, tag: str) -> float:
    """Uniform draw in [0, 1) for one named sub-stream of a round.

    The server seed keys an HMAC over ``client_seed:tag``, so every tag
    (mode, difficulty, break:<tick>) gets its own independent stream.
    """
    msg = f"{client_seed}:{tag}".encode()
    h = hmac.new(server_seed.encode(), msg, hashlib.sha256).hexdigest()
    return int(h[:13], 16) / float(1 << 52)  # 13 hex digits = 52 bits, [0,1)
