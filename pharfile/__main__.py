from .read import main

main()
