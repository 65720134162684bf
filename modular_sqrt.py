#!/usr/bin/env python3
# modular_sqrt.py
# All square roots of n modulo m: every 0 <= x < m with x^2 ≡ n (mod m).
# Prime moduli use Tonelli–Shanks (closed form when p ≡ 3 mod 4), prime powers
# are reached by Hensel lifting and composite moduli are assembled by CRT over
# the prime-power factors of m (factored with sympy unless given explicitly).
# Modes:
#   sqrt       -> all roots mod a general modulus
#                 Example: python modular_sqrt.py sqrt --n 1240 --m 289032
#                 Example: python modular_sqrt.py sqrt --n 13 --m 1234566 --factors "2^1,3^2,107^1,641^1" --jobs 2
#   prime      -> roots mod a prime (not checked)
#                 Example: python modular_sqrt.py prime --n 16 --p 101
#   primepower -> roots mod p^k (p not checked)
#                 Example: python modular_sqrt.py primepower --n 1 --p 2 --k 5
#   verify     -> check candidate roots
#                 Example: python modular_sqrt.py verify --n 4 --m 5 2 3
#   factor     -> show the prime-power factorization used for a modulus
#                 Example: python modular_sqrt.py factor --m 289032
#   selftest   -> quick built-in smoke tests
#                 Example: python modular_sqrt.py selftest --seed 7
#
# Python 3.8+

import argparse
import hashlib
import itertools
import json
import logging
import operator
import random
from concurrent.futures import ProcessPoolExecutor
from functools import lru_cache
from math import prod
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from sympy import factorint, isprime, nextprime

logger = logging.getLogger(__name__)

# Diagnostic counters (process local, never affect results)
_COUNTERS = {
    'tonelli_calls': 0,
    'fast_path': 0,
    'nonresidue_rejects': 0,
    'hensel_levels': 0,
    'ramified_branches': 0,
    'crt_combines': 0,
}


def reset_counters() -> None:
    for key in _COUNTERS:
        _COUNTERS[key] = 0


class DomainError(ValueError):
    """Raised for inputs outside the domain of a routine (e.g. modulus <= 0)."""


class InvariantError(AssertionError):
    """
    An internal invariant of the algorithm was broken.

    Only reachable when a documented precondition (such as "p is prime")
    was violated by the caller.
    """


# ---------- arithmetic helpers ----------
def as_integer(x) -> int:
    """
    Normalise an integer-like value (int, numpy integer, ...) to a Python int.

    Python ints never wrap, so fixed-width inputs are widened here once and
    every later product is exact before it is reduced.
    """
    return operator.index(x)


def mulmod(a: int, b: int, m: int) -> int:
    return (a * b) % m


def addmod(a: int, b: int, m: int) -> int:
    return (a + b) % m


def invmod(a: int, m: int) -> int:
    """Inverse of a mod m; ValueError if gcd(a, m) != 1."""
    return pow(a, -1, m)


@lru_cache(maxsize=200_000)
def legendre(a: int, p: int) -> int:
    """
    Compute the Legendre symbol (a/p) with Euler's criterion.

    :param a: Numerator.
    :param p: Odd prime denominator.
    :return: 1 if quadratic residue, -1 if not, 0 if a ≡ 0 mod p.
    """
    a %= p
    if a == 0:
        return 0
    t = pow(a, (p - 1) // 2, p)
    if t == p - 1:
        return -1
    else:
        return t


# ---------- deterministic RNG ----------
def _rng_for_n(seed: Optional[int], n: int) -> random.Random:
    """
    Deterministic RNG per (seed, n). If seed is None, use global random.

    :param seed: Optional seed for reproducibility.
    :param n: Modulus or identifier.
    :return: random.Random instance.
    """
    if seed is None:
        return random
    b = f"{seed}:{n}".encode()
    h = hashlib.blake2b(b, digest_size=16).digest()
    return random.Random(int.from_bytes(h, "big"))


# ---------- square roots mod a prime ----------
def _first_nonresidue(p: int) -> int:
    for z in range(2, p):
        if legendre(z, p) == -1:
            return z
    raise InvariantError(f"no quadratic non-residue below {p}; is it prime?")


def tonelli_shanks(n: int, p: int) -> int:
    """
    One square root of a quadratic residue n mod an odd prime p, p ≡ 1 mod 4.
    Steps: split p-1 = q*2^s, find non-residue z, then shrink the order of t.
    """
    _COUNTERS['tonelli_calls'] += 1
    q = p - 1
    s = 0
    while q % 2 == 0:
        q //= 2
        s += 1
    z = _first_nonresidue(p)
    m = s
    c = pow(z, q, p)
    t = pow(n, q, p)
    x = pow(n, (q + 1) // 2, p)
    while t != 1:
        # least i in [1, m) with t^(2^i) == 1
        i = 1
        t2i = mulmod(t, t, p)
        while i < m and t2i != 1:
            t2i = mulmod(t2i, t2i, p)
            i += 1
        if i == m:
            raise InvariantError(f"order of t reached 2^{m} mod {p}; is it prime?")
        b = pow(c, 1 << (m - i - 1), p)
        m = i
        c = mulmod(b, b, p)
        t = mulmod(t, c, p)
        x = mulmod(x, b, p)
    return x


def sqrtmodprime(n, p) -> List[int]:
    """
    All x in [0, p) with x^2 ≡ n (mod p), unsorted.

    The behaviour is undefined when p is not prime; primality is not
    checked. Use sqrtmod() when that cannot be guaranteed.

    :param n: Any integer.
    :param p: Prime modulus.
    :return: [] for a non-residue, [0] for n ≡ 0, [1] for p == 2 and odd n,
        otherwise the two roots [r, p - r].
    """
    n, p = as_integer(n), as_integer(p)
    n %= p
    if n == 0:
        return [0]
    if p == 2:
        return [1]
    if legendre(n, p) == -1:
        _COUNTERS['nonresidue_rejects'] += 1
        return []
    if p % 4 == 3:
        _COUNTERS['fast_path'] += 1
        r = pow(n, (p + 1) // 4, p)
        return [r, p - r]
    r = tonelli_shanks(n, p)
    return [r, p - r]


# ---------- Hensel lifting to p^k ----------
def hensel_lift_level(roots: Iterable[int], n: int, p: int, j: int) -> List[int]:
    """
    Lift the roots of x^2 ≡ n mod p^(j-1) to all roots mod p^j.

    A root with 2r invertible mod p has exactly one lift (Newton step).
    Otherwise (p | r, or p == 2) either every r + t*p^(j-1) is a root or
    none is, depending on whether r itself already works mod p^j.
    """
    lower = p ** (j - 1)
    q = lower * p
    lifted = []
    for r in roots:
        if (2 * r) % p != 0:
            s = (r - (r * r - n) * invmod(2 * r, p)) % q
            lifted.append(s)
        elif (r * r - n) % q == 0:
            _COUNTERS['ramified_branches'] += 1
            lifted.extend(r + t * lower for t in range(p))
    return lifted


def sqrtmodprimepower(n, p, k) -> List[int]:
    """
    For prime p and q = p^k, all x in [0, q) with x^2 ≡ n (mod q), unsorted.

    The behaviour is undefined when p is not prime; primality is not checked.

    :param n: Any integer.
    :param p: Prime.
    :param k: Exponent, k >= 1.
    :return: List of roots; may hold more than two roots when p divides n.
    """
    n, p, k = as_integer(n), as_integer(p), as_integer(k)
    if k < 1:
        raise DomainError(f"The exponent k must be at least 1, got {k}")
    if k == 1:
        return sqrtmodprime(n, p)
    q = p ** k
    n %= q
    # Euler's criterion mod p; meaningless for p == 2
    if p != 2 and legendre(n, p) == -1:
        _COUNTERS['nonresidue_rejects'] += 1
        return []
    roots = sqrtmodprime(n, p)
    for j in range(2, k + 1):
        if not roots:
            break
        _COUNTERS['hensel_levels'] += 1
        roots = hensel_lift_level(roots, n, p, j)
        logger.debug("lift %d^%d: %d roots", p, j, len(roots))
    return roots


# ---------- CRT ----------
def crt(residues: Sequence[int], moduli: Sequence[int]) -> int:
    """
    Solve x ≡ residues[i] (mod moduli[i]) for pairwise coprime moduli.

    Returns the unique solution in [0, prod(moduli)).
    """
    if len(residues) != len(moduli):
        raise ValueError("residues and moduli differ in length")
    _COUNTERS['crt_combines'] += 1
    acc_res, acc_mod = 0, 1
    for r, q in zip(residues, moduli):
        if q <= 0:
            raise ValueError(f"CRT moduli must be positive, got {q}")
        total = acc_mod * q
        # acc_mod is the complement of q in total, and q that of acc_mod
        old = mulmod(acc_res, q * invmod(q, acc_mod), total)
        new = mulmod(r, acc_mod * invmod(acc_mod, q), total)
        acc_res = addmod(old, new, total)
        acc_mod = total
    return acc_res


def _merge_solutions(roots_a: List[int], mod_a: int, roots_b: List[int], mod_b: int) -> Tuple[List[int], int]:
    """Every CRT combination of a root mod mod_a with a root mod mod_b."""
    merged = [crt([a1, a2], [mod_a, mod_b]) for a1 in roots_a for a2 in roots_b]
    return merged, mod_a * mod_b


# ---------- factorization ----------
def parse_factors(factors_str: str) -> List[Tuple[int, int]]:
    """
    Parse "p1^e1,p2^e2" to [(p1,e1),(p2,e2)]. A bare "p" means p^1.
    """
    pe = []
    for part in factors_str.split(','):
        part = part.strip()
        if not part:
            continue
        try:
            if '^' in part:
                p, e = map(int, part.split('^'))
            else:
                p, e = int(part), 1
        except ValueError:
            raise DomainError(f"Bad factor {part!r}; expected p or p^e") from None
        pe.append((p, e))
    return pe


def validate_factors(pe: Sequence[Tuple[int, int]]) -> int:
    """
    Validate a prime-power factorization and compute N = prod p^e.
    """
    N = 1
    seen = set()
    for p, e in pe:
        if e < 1:
            raise DomainError(f"Exponent of {p} must be at least 1, got {e}")
        if p in seen:
            raise DomainError(f"{p} listed twice")
        if not isprime(p):
            raise DomainError(f"{p} not prime")
        seen.add(p)
        N *= p ** e
    return N


def factor_modulus(m: int) -> List[Tuple[int, int]]:
    """Prime-power factorization of m >= 1, smallest prime first."""
    pe = sorted(factorint(m).items())
    logger.debug("factored %d as %s", m, pe)
    return pe


FactorSpec = Union[None, str, Sequence[Tuple[int, int]]]


def _resolve_factors(m: int, factors: FactorSpec) -> List[Tuple[int, int]]:
    if factors is None:
        return factor_modulus(m)
    pe = parse_factors(factors) if isinstance(factors, str) else [(as_integer(p), as_integer(e)) for p, e in factors]
    N = validate_factors(pe)
    if N != m:
        raise DomainError(f"Factors multiply to {N}, not to the modulus {m}")
    return sorted(pe)


def _check_modulus(m: int) -> None:
    if m <= 0:
        raise DomainError(f"The modulus m must be a positive integer, got {m}")


# ---------- general modulus ----------
def _sqrtmod_parallel(n: int, pe: List[Tuple[int, int]], jobs: int) -> List[int]:
    """
    Lift every factor in a process pool, then merge the solution sets
    pairwise (divide and conquer), each merge also running in the pool.
    """
    with ProcessPoolExecutor(max_workers=jobs) as executor:
        futures = [executor.submit(sqrtmodprimepower, n, p, e) for p, e in pe]
        parts = []
        for (p, e), future in zip(pe, futures):
            roots = future.result()
            logger.debug("factor %d^%d: %d roots", p, e, len(roots))
            if not roots:
                for f in futures:
                    f.cancel()
                return []
            parts.append((roots, p ** e))
        while len(parts) > 1:
            pending = [executor.submit(_merge_solutions, *parts[i], *parts[i + 1]) for i in range(0, len(parts) - 1, 2)]
            merged = [f.result() for f in pending]
            if len(parts) % 2:
                merged.append(parts[-1])
            parts = merged
            logger.debug("merge round: %d partial sets left", len(parts))
    return parts[0][0]


def sqrtmod(n, m, factors: FactorSpec = None, jobs: int = 1) -> List[int]:
    """
    Find all integers 0 <= x < m with x^2 ≡ n (mod m). Returns an unsorted list.

    Square roots modulo a composite are as hard as factoring m; sympy's
    factorint does that part unless the factorization is passed in. If m is
    known to be prime, sqrtmodprime() avoids factoring.

    :param n: Any integer.
    :param m: Modulus, m >= 1.
    :param factors: Optional factorization of m, "p^e,..." or [(p, e), ...].
    :param jobs: Worker processes for lifting and merging (1 = sequential).
    :return: List of distinct roots, in no particular order.
    :raises DomainError: if m <= 0 or factors do not describe m.
    """
    n, m = as_integer(n), as_integer(m)
    _check_modulus(m)
    if m == 1:
        return [0]
    pe = _resolve_factors(m, factors)
    if jobs > 1 and len(pe) > 1:
        return _sqrtmod_parallel(n, pe, jobs)

    roots = [0]
    mm = 1
    for p, e in pe:
        q = p ** e
        local = sqrtmodprimepower(n, p, e)
        logger.debug("factor %d^%d: %d roots", p, e, len(local))
        if not local:
            return []
        roots = [crt([a1, a2], [q, mm]) for a1 in local for a2 in roots]
        mm *= q
    return roots


def iter_sqrtmod(n, m, factors: FactorSpec = None) -> Iterator[int]:
    """
    Generator version of sqrtmod() for streaming large root sets.
    """
    n, m = as_integer(n), as_integer(m)
    _check_modulus(m)
    if m == 1:
        yield 0
        return
    pe = _resolve_factors(m, factors)
    local_sols = []
    for p, e in pe:
        local = sqrtmodprimepower(n, p, e)
        if not local:
            return
        local_sols.append(local)
    mods = [p ** e for p, e in pe]
    for combo in itertools.product(*local_sols):
        yield crt(combo, mods)


def count_sqrtmod(n, m, factors: FactorSpec = None) -> int:
    """Number of square roots of n mod m, without combining them."""
    n, m = as_integer(n), as_integer(m)
    _check_modulus(m)
    if m == 1:
        return 1
    return prod(len(sqrtmodprimepower(n, p, e)) for p, e in _resolve_factors(m, factors))


# ---------- Verification ----------
def check_roots(n: int, m: int, roots: Iterable[int]) -> Dict:
    """
    Verify candidate roots of x^2 ≡ n mod m.
    """
    _check_modulus(m)
    roots = list(roots)
    bad = [x for x in roots if not (0 <= x < m) or (x * x - n) % m != 0]
    return {"valid": not bad, "n": n, "m": m, "roots": roots, "bad": bad}


# ---------- Helpers ----------
def _emit(out: Union[Dict, Iterator], args: argparse.Namespace):
    """
    Emit JSON or stream.
    """
    if isinstance(out, Iterator):
        for item in out:
            print(json.dumps(item))
    else:
        print(json.dumps(out, indent=2))


def _setup_logging(verbose: int, log_file: Optional[str]) -> None:
    levels = {0: logging.ERROR, 1: logging.WARNING, 2: logging.INFO}
    logging.basicConfig(
        filename=log_file,
        level=levels.get(verbose, logging.DEBUG),
        format='%(asctime)s - %(message)s'
    )


def run_selftest(seed: Optional[int] = None, trials: int = 20) -> Dict:
    """
    Fixed scenarios plus random prime round trips; "ok" is False on any miss.
    """
    results = {}
    results["sqrt_4_5"] = sorted(sqrtmod(4, 5)) == [2, 3]
    results["sqrt_1240_289032"] = sorted(sqrtmod(1240, 289032)) == [
        10712, 37460, 107056, 133804, 155228, 181976, 251572, 278320]
    results["sqrt_23_200"] = sqrtmod(23, 200) == []
    results["prime_16_101"] = sorted(sqrtmodprime(16, 101)) == [4, 97]
    results["prime_15_101"] = sqrtmodprime(15, 101) == []
    results["prime_0_101"] = sqrtmodprime(0, 101) == [0]
    rng = _rng_for_n(seed, trials)
    failures = []
    for _ in range(trials):
        p = nextprime(rng.randrange(3, 1 << 61))
        r = rng.randrange(1, p)
        n = r * r % p
        roots = sqrtmodprime(n, p)
        if r not in roots or not check_roots(n, p, roots)["valid"]:
            failures.append({"p": p, "n": n, "roots": roots})
    results["round_trip_failures"] = failures
    results["ok"] = all(v for k, v in results.items() if k != "round_trip_failures") and not failures
    return results


# ---------- Main ----------
def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Solve x^2 ≡ n mod m")
    parser.add_argument('--verbose', type=int, default=0)
    parser.add_argument('--log_file', type=str)
    subparsers = parser.add_subparsers(dest="mode", required=True)

    # Sqrt
    sqrt_parser = subparsers.add_parser("sqrt")
    sqrt_parser.add_argument('--n', type=int, required=True)
    sqrt_parser.add_argument('--m', type=int, required=True)
    sqrt_parser.add_argument('--factors', type=str)
    sqrt_parser.add_argument('--jobs', type=int, default=1)
    sqrt_parser.add_argument('--stream', action='store_true')
    sqrt_parser.add_argument('--count', action='store_true')
    sqrt_parser.add_argument('--sort', action='store_true')

    # Prime
    prime_parser = subparsers.add_parser("prime")
    prime_parser.add_argument('--n', type=int, required=True)
    prime_parser.add_argument('--p', type=int, required=True)

    # Prime power
    pp_parser = subparsers.add_parser("primepower")
    pp_parser.add_argument('--n', type=int, required=True)
    pp_parser.add_argument('--p', type=int, required=True)
    pp_parser.add_argument('--k', type=int, required=True)

    # Verify
    verify_parser = subparsers.add_parser("verify")
    verify_parser.add_argument('--n', type=int, required=True)
    verify_parser.add_argument('--m', type=int, required=True)
    verify_parser.add_argument('x', type=int, nargs='+')

    # Factor
    factor_parser = subparsers.add_parser("factor")
    factor_parser.add_argument('--m', type=int, required=True)

    # Selftest
    selftest_parser = subparsers.add_parser("selftest")
    selftest_parser.add_argument('--seed', type=int)
    selftest_parser.add_argument('--trials', type=int, default=20)

    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.log_file)
    reset_counters()

    try:
        if args.mode == "sqrt":
            if args.stream:
                _emit({"method": "sqrt", "n": args.n, "m": args.m, "stream": True}, args)
                _emit(({"x": x} for x in iter_sqrtmod(args.n, args.m, args.factors)), args)
                return
            if args.count:
                out = {"method": "sqrt", "n": args.n, "m": args.m, "count": count_sqrtmod(args.n, args.m, args.factors)}
            else:
                roots = sqrtmod(args.n, args.m, args.factors, args.jobs)
                if args.sort:
                    roots.sort()
                out = {"method": "sqrt", "n": args.n, "m": args.m, "count": len(roots), "roots": roots}
            out["counters"] = _COUNTERS.copy()
            _emit(out, args)

        elif args.mode == "prime":
            roots = sqrtmodprime(args.n, args.p)
            _emit({"method": "prime", "n": args.n, "p": args.p, "roots": roots, "counters": _COUNTERS.copy()}, args)

        elif args.mode == "primepower":
            roots = sqrtmodprimepower(args.n, args.p, args.k)
            _emit({"method": "primepower", "n": args.n, "p": args.p, "k": args.k, "roots": roots, "counters": _COUNTERS.copy()}, args)

        elif args.mode == "verify":
            out = check_roots(args.n, args.m, args.x)
            out["method"] = "verify"
            _emit(out, args)

        elif args.mode == "factor":
            _check_modulus(args.m)
            pe = factor_modulus(args.m)
            _emit({"method": "factor", "m": args.m, "factors": ",".join(f"{p}^{e}" for p, e in pe)}, args)

        elif args.mode == "selftest":
            out = run_selftest(args.seed, args.trials)
            _emit({"method": "selftest", "results": out}, args)
            if not out["ok"]:
                raise SystemExit(1)
    except DomainError as e:
        logger.error("%s: %s", args.mode, e)
        raise SystemExit(f"Error: {e}")


if __name__ == "__main__":
    main()
