from cartwise.cli import main

main()
