from tripfolio.cli import main

main()
