from campus_map.cli import main

main()
