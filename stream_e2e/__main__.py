from stream_e2e.cli.main import main

main()
