from aur_mirror_meta.cli import main

if __name__ == "__main__":
    main()
