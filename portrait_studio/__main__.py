from portrait_studio.app import main

main()
