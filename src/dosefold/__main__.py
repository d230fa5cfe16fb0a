from dosefold.cli import main

main()
