# CPU-bound but well inside a one second budget
import sys


def is_prime(n):
    if n < 2:
        return False
    if n % 2 == 0:
        return n == 2
    i = 3
    while i * i <= n:
        if n % i == 0:
            return False
        i += 2
    return True


def main():
    limit = int(sys.stdin.read().strip() or 20000)
    s = 0
    for i in range(2, limit):
        if is_prime(i):
            s += i
    print("sum_primes_up_to", limit, s)


if __name__ == "__main__":
    main()
