from meshinventory.cli import main

main()
