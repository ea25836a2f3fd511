from __future__ import annotations

HELP = """cdt3: Causal Dynamical Triangulations in 3 dimensions

Common commands:
  python -m cdt3.run --spherical -n 1000 -t 16 -k 1.1 -a 0.6 -l 0.8 -p 100 --out_dir results/s3_n1000
  python -m cdt3.run --config configs/sphere_small.yaml
  python -m cdt3.sweep -n 1000 -t 16 -k 1.1 -a 0.6 -l 0.8 -p 100 --seeds 1 2 3

"""


def main() -> None:
    print(HELP)


if __name__ == "__main__":
    main()
